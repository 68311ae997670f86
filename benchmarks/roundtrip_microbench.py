#!/usr/bin/env python3
"""
Typeweave Round-trip Micro-benchmark Harness.

Benchmarks `Typeweave.stringify()` followed by `Typeweave.parse()` on
deterministic synthetic graphs with shared references, cycles and
registered types.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import json
import math
from pathlib import Path
import random
import statistics
import sys
import time
import tracemalloc
from typing import Any

# Ensure repository root is importable when executing this file directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from typeweave import Typeweave
from typeweave.presets import BUILTIN_TYPES


@dataclass(frozen=True)
class ScenarioConfig:
    """Benchmark scenario configuration."""

    record_count: int
    shared_ratio: float
    warmup_runs: int
    measured_runs: int
    seed: int


def build_synthetic_graph(record_count: int, shared_ratio: float, seed: int) -> dict[str, Any]:
    """
    Build a deterministic graph of records.

    Each record carries typed leaves (datetime, Decimal, set) and a
    link to the previous record; ``shared_ratio`` of the records also
    reference a shared owner object, and the owner points back at the root.
    """
    rng = random.Random(seed)
    base_time = datetime(2026, 1, 1, tzinfo=timezone.utc)
    root: dict[str, Any] = {"records": []}
    owner = {"name": "owner", "root": root}

    previous = None
    for index in range(record_count):
        record = {
            "id": index,
            "created_at": base_time + timedelta(minutes=rng.randrange(10_000)),
            "amount": Decimal(rng.randrange(1, 100_000)) / 100,
            "tags": {f"tag_{rng.randrange(8)}" for _ in range(3)},
            "previous": previous,
        }
        if rng.random() < shared_ratio:
            record["owner"] = owner
        root["records"].append(record)
        previous = record

    return root


def percentile(values: list[float], percentile_rank: float) -> float:
    """Compute percentile with linear interpolation."""
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]

    position = (len(ordered) - 1) * percentile_rank
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return ordered[lower]

    fraction = position - lower
    return ordered[lower] + (ordered[upper] - ordered[lower]) * fraction


def _summary(values: list[float]) -> dict[str, float]:
    return {
        "min": min(values),
        "max": max(values),
        "mean": statistics.mean(values),
        "median": statistics.median(values),
        "p95": percentile(values, 0.95),
    }


def run_scenario(config: ScenarioConfig) -> dict[str, Any]:
    """Run one benchmark scenario and return structured metrics."""
    graph = build_synthetic_graph(config.record_count, config.shared_ratio, config.seed)
    weave = Typeweave().register(BUILTIN_TYPES)

    for _ in range(config.warmup_runs):
        weave.parse(weave.stringify(graph))

    encode_ms: list[float] = []
    decode_ms: list[float] = []
    peak_memory_mib: list[float] = []
    text = ""

    for _ in range(config.measured_runs):
        tracemalloc.start()
        started = time.perf_counter()
        text = weave.stringify(graph)
        encoded = time.perf_counter()
        revived = weave.parse(text)
        finished = time.perf_counter()
        _, peak_bytes = tracemalloc.get_traced_memory()
        tracemalloc.stop()

        encode_ms.append((encoded - started) * 1000.0)
        decode_ms.append((finished - encoded) * 1000.0)
        peak_memory_mib.append(peak_bytes / (1024.0 * 1024.0))

    records = revived["records"]
    owners = [record["owner"] for record in records if "owner" in record]
    owner_shared = all(owner is owners[0] for owner in owners)

    return {
        "scenario": {
            "records": config.record_count,
            "shared_ratio": config.shared_ratio,
            "seed": config.seed,
            "warmup_runs": config.warmup_runs,
            "measured_runs": config.measured_runs,
        },
        "payload": {
            "bytes": len(text.encode("utf-8")),
            "type_names": weave.special_type_names(graph),
        },
        "fidelity": {
            "record_count": len(records),
            "shared_owner_preserved": owner_shared,
        },
        "encode_ms": _summary(encode_ms),
        "decode_ms": _summary(decode_ms),
        "peak_memory_mib": _summary(peak_memory_mib),
    }


def print_human_summary(result: dict[str, Any]) -> None:
    """Print compact human-readable summary for CLI runs."""
    scenario = result["scenario"]
    payload = result["payload"]
    encode = result["encode_ms"]
    decode = result["decode_ms"]
    memory = result["peak_memory_mib"]

    print(
        f"[Scenario] records={scenario['records']}, shared_ratio={scenario['shared_ratio']}, "
        f"runs={scenario['measured_runs']}"
    )
    print(f"  Payload: bytes={payload['bytes']}, types={', '.join(payload['type_names'])}")
    print(
        "  Encode(ms): "
        f"mean={encode['mean']:.2f}, median={encode['median']:.2f}, p95={encode['p95']:.2f}"
    )
    print(
        "  Decode(ms): "
        f"mean={decode['mean']:.2f}, median={decode['median']:.2f}, p95={decode['p95']:.2f}"
    )
    print(
        "  Peak Memory(MiB): "
        f"mean={memory['mean']:.2f}, median={memory['median']:.2f}, p95={memory['p95']:.2f}"
    )
    print(f"  Fidelity: {result['fidelity']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark Typeweave stringify/parse round-trips.")
    parser.add_argument(
        "--record-counts",
        nargs="+",
        type=int,
        default=[1000, 10000],
        help="Record counts to benchmark.",
    )
    parser.add_argument(
        "--shared-ratio",
        type=float,
        default=0.25,
        help="Fraction of records referencing the shared owner object.",
    )
    parser.add_argument(
        "--warmup-runs",
        type=int,
        default=1,
        help="Warmup iterations per scenario.",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=3,
        help="Measured iterations per scenario.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed for deterministic fixture generation.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="",
        help="Optional path to write JSON results.",
    )
    args = parser.parse_args()

    results = []
    for record_count in args.record_counts:
        config = ScenarioConfig(
            record_count=record_count,
            shared_ratio=args.shared_ratio,
            warmup_runs=args.warmup_runs,
            measured_runs=args.runs,
            seed=args.seed,
        )
        result = run_scenario(config)
        print_human_summary(result)
        results.append(result)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as handle:
            json.dump({"results": results}, handle, indent=2, default=str)
        print(f"Wrote results to {output_path}")


if __name__ == "__main__":
    main()
