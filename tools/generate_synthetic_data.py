"""
Generate a reproducible synthetic multi-class dataset for trying the CLI.

Writes train.csv / train_labels.csv / test.csv / test_labels.csv under the
output directory.  Each class is a Gaussian blob around its own center.
"""

import argparse
from pathlib import Path

import numpy as np
import pandas as pd


def make_blobs(
    n_points: int,
    n_features: int,
    n_classes: int,
    spread: float = 1.0,
    separation: float = 5.0,
    seed: int = 42,
) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-separation, separation, size=(n_classes, n_features))
    labels = rng.integers(0, n_classes, size=n_points)
    points = centers[labels] + rng.normal(0.0, spread, size=(n_points, n_features))
    return points, labels


def main(argv=None) -> None:
    p = argparse.ArgumentParser(description="Generate a synthetic LinearSVM dataset")
    p.add_argument("--out-dir", default="data", help="Output directory")
    p.add_argument("--n-train", type=int, default=1000)
    p.add_argument("--n-test", type=int, default=250)
    p.add_argument("--n-features", type=int, default=5)
    p.add_argument("--n-classes", type=int, default=3)
    p.add_argument("--seed", type=int, default=42)
    args = p.parse_args(argv)

    x, y = make_blobs(
        args.n_train + args.n_test, args.n_features, args.n_classes, seed=args.seed
    )
    target = Path(args.out_dir)
    target.mkdir(parents=True, exist_ok=True)

    splits = {
        "train": slice(0, args.n_train),
        "test": slice(args.n_train, None),
    }
    for name, rows in splits.items():
        pd.DataFrame(x[rows]).to_csv(target / f"{name}.csv", header=False, index=False)
        pd.Series(y[rows]).to_csv(target / f"{name}_labels.csv", header=False, index=False)

    print(f"Synthetic dataset written to: {target}")


if __name__ == "__main__":
    main()
