#!/usr/bin/env python3
"""Length-sweep benchmark: scan throughput vs sequence length.

Times ``inclusive_scan`` / ``exclusive_scan`` on the Triton kernels and on the
PyTorch implementation of the same algorithm, with ``torch.cumsum`` as the
vendor baseline. Results are printed as a table and optionally written as
JSON.

Usage:
    # Default: n = 2^10 .. 2^26, add, int64, all backends
    python benchmarks/benchmark_scan.py

    # Custom lengths and operator
    python benchmarks/benchmark_scan.py --n 1000,1000000 --op max

    # Exclusive scan with the host carry strategy
    python benchmarks/benchmark_scan.py --exclusive --carry-strategy host

    # Quick mode, write JSON
    python benchmarks/benchmark_scan.py --quick --json results/scan.json
"""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path

import torch

from flash_scan import HAS_TRITON, ScanConfig, exclusive_scan, inclusive_scan

# ======================================================================
# Default configurations
# ======================================================================

DEFAULT_N_VALUES = [2**k for k in range(10, 27, 2)]
QUICK_N_VALUES = [2**10, 2**16, 2**20]

BACKENDS = ["triton", "pytorch", "torch_cumsum"]

DTYPES = {
    "int32": torch.int32,
    "int64": torch.int64,
    "float32": torch.float32,
    "float64": torch.float64,
}


@dataclass
class ScanBenchmarkResult:
    backend: str
    n: int
    op: str
    dtype: str
    exclusive: bool
    time_ms: float
    std_ms: float
    status: str = "ok"

    @property
    def throughput(self) -> float:
        if self.time_ms <= 0:
            return 0.0
        return self.n / (self.time_ms / 1000.0)


def _format_throughput(tp: float) -> str:
    """Format throughput (elements/second) with appropriate unit."""
    if tp <= 0:
        return "---"
    elif tp >= 1e9:
        return f"{tp/1e9:.1f}G el/s"
    elif tp >= 1e6:
        return f"{tp/1e6:.1f}M el/s"
    elif tp >= 1e3:
        return f"{tp/1e3:.1f}K el/s"
    else:
        return f"{tp:.1f} el/s"


def _sync(device: torch.device) -> None:
    if device.type == "cuda":
        torch.cuda.synchronize(device)


def _make_runner(backend, x, op, exclusive, carry_strategy):
    if backend == "torch_cumsum":
        if op != "add":
            return None
        if exclusive:
            return lambda: torch.cumsum(x, dim=0) - x
        return lambda: torch.cumsum(x, dim=0)

    config = ScanConfig(use_triton=backend == "triton", carry_strategy=carry_strategy)
    out = torch.empty_like(x)
    if exclusive:
        return lambda: exclusive_scan(x, 0, op=op, out=out, config=config)
    return lambda: inclusive_scan(x, op=op, out=out, config=config)


def time_backend(
    backend: str,
    n: int,
    op: str,
    dtype: torch.dtype,
    exclusive: bool,
    carry_strategy: str,
    device: torch.device,
    repeats: int,
    warmup: int,
) -> ScanBenchmarkResult:
    """Time one (backend, n) combination."""
    dtype_name = str(dtype).replace("torch.", "")
    result = ScanBenchmarkResult(backend, n, op, dtype_name, exclusive, 0.0, 0.0)

    if backend == "triton" and not (HAS_TRITON and device.type == "cuda"):
        result.status = "skip: triton unavailable"
        return result

    if dtype.is_floating_point:
        x = torch.rand(n, dtype=dtype, device=device)
    else:
        x = torch.randint(-8, 9, (n,), dtype=dtype, device=device)

    run = _make_runner(backend, x, op, exclusive, carry_strategy)
    if run is None:
        result.status = f"skip: {backend} has no {op}"
        return result

    try:
        for _ in range(warmup):
            run()
        _sync(device)

        times = []
        for _ in range(repeats):
            t0 = time.perf_counter()
            run()
            _sync(device)
            times.append((time.perf_counter() - t0) * 1000.0)
    except torch.cuda.OutOfMemoryError:
        result.status = "oom"
        return result
    finally:
        del x
        if device.type == "cuda":
            torch.cuda.empty_cache()

    t = torch.tensor(times, dtype=torch.float64)
    result.time_ms = t.median().item()
    result.std_ms = t.std().item() if repeats > 1 else 0.0
    return result


def run_sweep(
    n_values: list[int],
    backends: list[str],
    op: str,
    dtype: torch.dtype,
    exclusive: bool,
    carry_strategy: str,
    device: torch.device,
    repeats: int,
    warmup: int,
) -> list[ScanBenchmarkResult]:
    """Run all (backend x n) combinations."""
    results: list[ScanBenchmarkResult] = []

    for backend in backends:
        print(f"\n  {backend.upper()}")
        print("  " + "-" * 72)
        print(f"  {'n':>10} | {'Time':>10} | {'Std':>8} | {'Throughput':>14} | Status")

        for n in n_values:
            r = time_backend(
                backend, n, op, dtype, exclusive, carry_strategy, device, repeats, warmup
            )
            results.append(r)
            if r.status == "ok":
                print(
                    f"  {n:>10} | {r.time_ms:>8.3f}ms | {r.std_ms:>6.3f}ms | "
                    f"{_format_throughput(r.throughput):>14} | ok"
                )
            else:
                print(f"  {n:>10} | {'---':>10} | {'---':>8} | {'---':>14} | {r.status}")

    return results


def main():
    parser = argparse.ArgumentParser(
        description="Length sweep: prefix-scan throughput vs sequence length",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--n", type=str, default=None, help="Comma-separated lengths. Default: 2^10..2^26"
    )
    parser.add_argument("--op", type=str, default="add", help="Operator name. Default: add")
    parser.add_argument(
        "--dtype",
        type=str,
        default="int64",
        choices=list(DTYPES.keys()),
        help="Element dtype. Default: int64",
    )
    parser.add_argument(
        "--backends",
        type=str,
        default=",".join(BACKENDS),
        help=f"Comma-separated backends from {BACKENDS}. Default: all",
    )
    parser.add_argument("--exclusive", action="store_true", help="Time the exclusive scan")
    parser.add_argument(
        "--carry-strategy",
        type=str,
        default="auto",
        choices=["auto", "device", "host"],
        help="Carry scan strategy. Default: auto",
    )
    parser.add_argument("--repeats", type=int, default=20, help="Timed iterations. Default: 20")
    parser.add_argument("--warmup", type=int, default=3, help="Warmup iterations. Default: 3")
    parser.add_argument("--cpu", action="store_true", help="Run on CPU even if CUDA is present")
    parser.add_argument(
        "--quick", action="store_true", help="Quick mode: fewer lengths, fewer repeats"
    )
    parser.add_argument("--json", type=Path, default=None, help="Write results to this file")
    args = parser.parse_args()

    device = torch.device("cuda" if torch.cuda.is_available() and not args.cpu else "cpu")

    # Parse n values (priority: --n > --quick > default)
    if args.n:
        n_values = sorted(int(x.strip()) for x in args.n.split(",") if x.strip())
    elif args.quick:
        n_values = QUICK_N_VALUES
    else:
        n_values = DEFAULT_N_VALUES
    repeats = min(args.repeats, 5) if args.quick else args.repeats

    backends = [b.strip() for b in args.backends.split(",") if b.strip()]
    unknown = sorted(set(backends) - set(BACKENDS))
    if unknown:
        parser.error(f"unknown backends {unknown}, expected from {BACKENDS}")

    print("=" * 76)
    print(
        f"Scan sweep: op={args.op} dtype={args.dtype} "
        f"{'exclusive' if args.exclusive else 'inclusive'} carry={args.carry_strategy}"
    )
    print(f"Device: {device}" + (f" ({torch.cuda.get_device_name(device)})" if device.type == "cuda" else ""))
    print(f"Triton available: {HAS_TRITON}")
    print("=" * 76)

    results = run_sweep(
        n_values,
        backends,
        args.op,
        DTYPES[args.dtype],
        args.exclusive,
        args.carry_strategy,
        device,
        repeats,
        args.warmup,
    )

    if args.json:
        args.json.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "device": str(device),
            "results": [dict(asdict(r), throughput=r.throughput) for r in results],
        }
        with open(args.json, "w") as f:
            json.dump(payload, f, indent=2)
        print(f"\nResults written to {args.json}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
