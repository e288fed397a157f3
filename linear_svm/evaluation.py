"""
Class-count derivation and accuracy reporting.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def number_of_classes(requested: int, labels: np.ndarray) -> int:
    """``requested`` if non-zero, otherwise the number of distinct labels."""
    if requested:
        return int(requested)
    return int(len(np.unique(np.asarray(labels))))


def accuracy_report(predictions: np.ndarray, labels: np.ndarray, num_classes: int) -> dict:
    """Per-class and overall accuracy of ``predictions`` against ``labels``.

    Per-class arrays cover ``max(num_classes, max(labels) + 1)`` classes; a
    class with no points reports an accuracy of 0.0.
    """
    p = np.asarray(predictions, dtype=np.int64).ravel()
    y = np.asarray(labels, dtype=np.int64).ravel()
    if len(p) != len(y):
        raise ValueError(
            f"Got {len(p)} predictions but {len(y)} labels; counts must match."
        )

    n_classes = max(int(num_classes), int(y.max()) + 1 if len(y) else 0)
    totals = np.bincount(y, minlength=n_classes)
    correct = np.bincount(y[p == y], minlength=n_classes)

    per_class = []
    for label in range(n_classes):
        total = int(totals[label])
        hits = int(correct[label])
        per_class.append(
            {
                "label": label,
                "correct": hits,
                "total": total,
                "accuracy": float(hits / total) if total else 0.0,
            }
        )

    n_correct = int(correct.sum())
    return {
        "per_class": per_class,
        "correct": n_correct,
        "total": int(len(y)),
        "accuracy": float(n_correct / len(y)) if len(y) else 0.0,
    }


def format_report(report: dict) -> list[str]:
    lines = [
        f"Accuracy for points with label {c['label']} is {c['accuracy']:g} "
        f"({c['correct']} of {c['total']})."
        for c in report.get("per_class", [])
    ]
    lines.append(
        f"Total accuracy for all points is {report.get('accuracy', 0.0):g} "
        f"({report.get('correct', 0)} of {report.get('total', 0)})."
    )
    return lines


def log_report(report: dict) -> None:
    for line in format_report(report):
        logger.info("%s", line)
