"""
GRIN compression benchmark on synthetic data

Runs each dataset generator several times, pushes the bytes through
encode_bytes/decode_bytes and records size and timing.

Outputs (in --outdir):
  - metrics.csv     (raw row per run)
  - summary.csv     (grouped mean/stdev)
  - *.png           (charts)

How to run:
  python experiments.py --outdir results --runs 5
  python experiments.py --outdir results --runs 3 --size_kb 64 --generators zipf128,english_like
"""

from __future__ import annotations

import argparse
import csv
import random
import statistics
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import matplotlib.pyplot as plt

import grin
import huffman as huff


# Utilities

def now_ns() -> int:
    return time.perf_counter_ns()

def ns_to_ms(ns: int) -> float:
    return ns / 1_000_000.0

def safe_mkdir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


# Synthetic dataset generators

def gen_uniform(size: int, alphabet: int = 256, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    return bytes(rng.randrange(0, alphabet) for _ in range(size))

def gen_repetitive(size: int, dominant: int = ord('A'), dom_frac: float = 0.90, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    other_symbols = [i for i in range(256) if i != dominant]
    out = bytearray()
    for _ in range(size):
        if rng.random() < dom_frac:
            out.append(dominant)
        else:
            out.append(rng.choice(other_symbols))
    return bytes(out)

def _sample_weighted(size: int, symbols: List[int], weights: List[float], seed: int) -> bytes:
    rng = random.Random(seed)
    return bytes(rng.choices(symbols, weights=weights, k=size))

def gen_zipf_like(size: int, alphabet: int = 128, s: float = 1.2, seed: int = 0) -> bytes:
    weights = [1.0 / ((i + 1) ** s) for i in range(alphabet)]
    return _sample_weighted(size, list(range(alphabet)), weights, seed)

def gen_english_like(size: int, seed: int = 0) -> bytes:
    chars = (
        " etaoinshrdlcumwfgypbvkjxq"
        "ETAOINSHRDLCUMWFGYPBVKJXQ"
        "\n"
    )
    weights = []
    for ch in chars:
        if ch == ' ':
            weights.append(13.0)
        elif ch == '\n':
            weights.append(1.5)
        elif ch.lower() in "etaoinshrdlu":
            weights.append(6.0)
        elif ch.lower() in "cmfwgypbvk":
            weights.append(2.5)
        else:
            weights.append(1.2)
    return _sample_weighted(size, [ord(ch) for ch in chars], weights, seed)

GENERATOR_REGISTRY: Dict[str, Callable[[int, int], bytes]] = {
    "uniform256": lambda size, seed: gen_uniform(size, alphabet=256, seed=seed),
    "uniform128": lambda size, seed: gen_uniform(size, alphabet=128, seed=seed),
    "zipf128": lambda size, seed: gen_zipf_like(size, alphabet=128, s=1.2, seed=seed),
    "repetitive90": lambda size, seed: gen_repetitive(size, dominant=ord('A'), dom_frac=0.90, seed=seed),
    "repetitive99": lambda size, seed: gen_repetitive(size, dominant=ord('A'), dom_frac=0.99, seed=seed),
    "english_like": lambda size, seed: gen_english_like(size, seed=seed),
    "empty": lambda size, seed: b"",
}

def generate_dataset(name: str, size_bytes: int, seed: int) -> bytes:
    fn = GENERATOR_REGISTRY.get(name)
    if fn is None:
        raise ValueError(f"unknown generator {name!r}, choose from {', '.join(sorted(GENERATOR_REGISTRY))}")
    return fn(size_bytes, seed)


# Experiment runner

@dataclass
class MetricRow:
    dataset_name: str
    file_size_bytes: int
    run_id: int
    unique_symbols: int  # including EOF
    tree_height: int
    header_bits: int
    avg_code_bits: float

    build_tree_ms: float
    encode_ms: float
    decode_ms: float

    compressed_bytes: int
    compression_ratio: float
    correctness_ok: int  # 1 or 0


def run_one(data: bytes, dataset_name: str = "", run_id: int = 0) -> MetricRow:
    ft = grin.count_frequencies([data])

    t0 = now_ns()
    root = huff.build_huffman_tree(ft)
    code_map = huff.generate_huffman_codes(root)
    t1 = now_ns()

    t2 = now_ns()
    packed = grin.encode_bytes(data)
    t3 = now_ns()

    t4 = now_ns()
    decoded = grin.decode_bytes(packed)
    t5 = now_ns()

    # every leaf costs 1 + 9 bits, every internal node 1 bit
    n_leaves = len(code_map)
    header_bits = n_leaves * (1 + huff.SYMBOL_BITS) + (n_leaves - 1)
    total_symbols = len(data) + 1
    avg_code_bits = sum(len(code_map[s]) * f for s, f in ft.items()) / total_symbols

    return MetricRow(
        dataset_name=dataset_name,
        file_size_bytes=len(data),
        run_id=run_id,
        unique_symbols=n_leaves,
        tree_height=huff.tree_height(root),
        header_bits=header_bits,
        avg_code_bits=avg_code_bits,
        build_tree_ms=ns_to_ms(t1 - t0),
        encode_ms=ns_to_ms(t3 - t2),
        decode_ms=ns_to_ms(t5 - t4),
        compressed_bytes=len(packed),
        compression_ratio=len(packed) / max(1, len(data)),
        correctness_ok=1 if decoded == data else 0,
    )


def write_csv(path: Path, rows: List[MetricRow]) -> None:
    fields = list(MetricRow.__dataclass_fields__.keys())
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fields)
        w.writeheader()
        for r in rows:
            w.writerow({k: getattr(r, k) for k in fields})


def mean_stdev(vals: List[float]) -> Tuple[float, float]:
    if len(vals) == 1:
        return vals[0], 0.0
    return statistics.mean(vals), statistics.stdev(vals)


def group_summary(rows: List[MetricRow], out_path: Path) -> None:
    """
    Group by dataset_name, file_size_bytes and compute mean/stdev
    """
    key_to: Dict[Tuple[str, int], List[MetricRow]] = {}
    for r in rows:
        key_to.setdefault((r.dataset_name, r.file_size_bytes), []).append(r)

    measured = ["compression_ratio", "avg_code_bits", "build_tree_ms", "encode_ms", "decode_ms"]
    summary_fields = ["dataset_name", "file_size_bytes", "n_runs"]
    for m in measured:
        summary_fields += [f"{m}_mean", f"{m}_stdev"]
    summary_fields.append("correctness_ok_rate")

    with out_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=summary_fields)
        w.writeheader()
        for (dataset_name, size_b), items in sorted(key_to.items()):
            row = {"dataset_name": dataset_name, "file_size_bytes": size_b, "n_runs": len(items)}
            for m in measured:
                row[f"{m}_mean"], row[f"{m}_stdev"] = mean_stdev([getattr(x, m) for x in items])
            row["correctness_ok_rate"] = sum(x.correctness_ok for x in items) / len(items)
            w.writerow(row)


# Plotting

def plot_results(rows: List[MetricRow], outdir: Path) -> List[Path]:
    datasets = sorted(set(r.dataset_name for r in rows))
    if not datasets:
        return []

    def mean_for(dataset: str, field: str) -> float:
        vals = [getattr(r, field) for r in rows if r.dataset_name == dataset]
        return statistics.mean(vals) if vals else float("nan")

    x = list(range(len(datasets)))
    written = []

    plt.figure()
    plt.bar(x, [mean_for(d, "compression_ratio") for d in datasets])
    plt.xticks(x, datasets, rotation=20, ha="right")
    plt.ylabel("Compressed Bytes / Original Bytes")
    plt.title("GRIN Compression Ratio by Distribution")
    plt.tight_layout()
    path = outdir / "compression_ratio.png"
    plt.savefig(path, dpi=200)
    plt.close()
    written.append(path)

    plt.figure()
    for field, label in (("encode_ms", "encode"), ("decode_ms", "decode"), ("build_tree_ms", "build tree")):
        plt.plot(x, [mean_for(d, field) for d in datasets], marker="o", label=label)
    plt.xticks(x, datasets, rotation=20, ha="right")
    plt.ylabel("Time (ms)")
    plt.title("GRIN Timing by Distribution")
    plt.legend()
    plt.tight_layout()
    path = outdir / "timing.png"
    plt.savefig(path, dpi=200)
    plt.close()
    written.append(path)

    return written


# Main

def parse_csv_list(s: str) -> List[str]:
    return [x.strip() for x in s.split(",") if x.strip()]

def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Benchmark GRIN compression on synthetic data")
    ap.add_argument("--outdir", type=str, default="results", help="Output directory for CSV and plots")
    ap.add_argument("--runs", type=int, default=5, help="Repetitions per dataset")
    ap.add_argument("--seed", type=int, default=123, help="Base random seed")
    ap.add_argument("--size_kb", type=int, default=64, help="Size of each generated dataset in KB")
    ap.add_argument("--generators", type=str, default="uniform256,zipf128,repetitive90,english_like",
                    help="Comma-separated dataset generator names")
    ap.add_argument("--no_plots", action="store_true", help="Only write the CSV files")
    args = ap.parse_args(argv)

    gen_names = parse_csv_list(args.generators)
    unknown = [g for g in gen_names if g not in GENERATOR_REGISTRY]
    if unknown:
        ap.error(f"unknown generators: {', '.join(unknown)}")

    outdir = Path(args.outdir)
    safe_mkdir(outdir)
    size_b = max(0, args.size_kb) * 1024

    rows: List[MetricRow] = []
    for gen_name in gen_names:
        for run_id in range(1, args.runs + 1):
            data = generate_dataset(gen_name, size_b, args.seed + run_id)
            rows.append(run_one(data, gen_name, run_id))

    metrics_csv = outdir / "metrics.csv"
    summary_csv = outdir / "summary.csv"
    write_csv(metrics_csv, rows)
    group_summary(rows, summary_csv)

    ok_rate = sum(r.correctness_ok for r in rows) / max(1, len(rows))
    print(f"Wrote {len(rows)} rows to {metrics_csv}")
    print(f"Wrote grouped summary to {summary_csv}")
    print(f"Correctness rate across all runs: {ok_rate:.3f}")
    if not args.no_plots:
        plot_results(rows, outdir)
        print("Charts saved in:", outdir.resolve())
    return 0 if ok_rate == 1.0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
