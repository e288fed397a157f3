"""
Dataset loading and saving.

Matrices are stored one point per line, one dimension per column, without a
header.  In memory they are ``(n_samples, n_features)`` float arrays.
Label files hold one non-negative integer per point, either one per line or
all on a single line.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

_SEPARATORS = {
    ".csv": ",",
    ".tsv": "\t",
    ".txt": r"\s+",
}


def _separator(path: Path) -> str:
    return _SEPARATORS.get(path.suffix.lower(), ",")


def _read_table(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot open file '{path}'.")
    try:
        sep = _separator(path)
        engine = "python" if sep == r"\s+" else "c"
        return pd.read_csv(path, header=None, sep=sep, engine=engine)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()


def load_matrix(path: str | Path) -> np.ndarray:
    df = _read_table(path)
    x = df.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    if x.size and np.isnan(x).any():
        raise ValueError(f"Matrix in '{path}' contains non-numeric or missing values.")
    logger.info("Loaded matrix '%s' (%d points, %d dimensions)", path, x.shape[0], x.shape[1])
    return x


def to_labels(values) -> np.ndarray:
    """Coerce a 1-D array-like to non-negative integer class ids."""
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size and (np.isnan(arr).any() or (arr < 0).any() or (arr != np.floor(arr)).any()):
        raise ValueError("Labels must be non-negative integers.")
    return arr.astype(np.int64)


def load_labels(path: str | Path) -> np.ndarray:
    df = _read_table(path)
    if df.shape[0] > 1 and df.shape[1] > 1:
        raise ValueError(f"Labels in '{path}' must be a single row or a single column.")
    raw = df.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    labels = to_labels(raw)
    logger.info("Loaded %d labels from '%s'", len(labels), path)
    return labels


def split_labels(matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Take the trailing dimension of ``matrix`` as labels."""
    if matrix.ndim != 2 or matrix.shape[1] < 2:
        raise ValueError(
            "Can't get labels from training data since it has less than 2 rows."
        )
    return matrix[:, :-1].copy(), to_labels(matrix[:, -1])


def save_matrix(matrix: np.ndarray, path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    sep = " " if target.suffix.lower() == ".txt" else _separator(target)
    pd.DataFrame(np.atleast_2d(matrix)).to_csv(target, header=False, index=False, sep=sep)


def save_labels(labels: np.ndarray, path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    pd.Series(np.asarray(labels, dtype=np.int64)).to_csv(target, header=False, index=False)
