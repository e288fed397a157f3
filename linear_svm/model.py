"""
Linear multi-class SVM: objective, gradient, classification and persistence.

The model keeps a ``(n_features + fit_intercept, num_classes)`` parameter
matrix; when an intercept is fitted it lives in the last row.  Training
minimises the multi-class hinge loss

    L(W) = 1/n * sum_i sum_{j != y_i} max(0, s_ij - s_iy_i + delta)
           + lambda / 2 * ||W||^2

with ``s = X W (+ b)``, using whichever optimizer the caller passes in.
"""

from __future__ import annotations

import logging
import pickle
from pathlib import Path
from typing import Optional

import numpy as np

from linear_svm.utils import load_json, load_pickle, save_json, save_pickle

logger = logging.getLogger(__name__)

INIT_SCALE = 0.005


class LinearSVMFunction:
    """Decomposable hinge-loss objective over a fixed dataset."""

    def __init__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        num_classes: int,
        lambda_: float = 0.0001,
        delta: float = 1.0,
        fit_intercept: bool = True,
    ):
        self.x = np.asarray(x, dtype=float)
        self.y = np.asarray(y, dtype=np.int64)
        self.num_classes = int(num_classes)
        self.lambda_ = float(lambda_)
        self.delta = float(delta)
        self.fit_intercept = bool(fit_intercept)

    @property
    def num_functions(self) -> int:
        return self.x.shape[0]

    def _scores(self, parameters: np.ndarray, x: np.ndarray) -> np.ndarray:
        d = x.shape[1]
        scores = x @ parameters[:d]
        if self.fit_intercept:
            scores = scores + parameters[d]
        return scores

    def _margins(self, parameters: np.ndarray, idx) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        x = self.x if idx is None else self.x[idx]
        y = self.y if idx is None else self.y[idx]
        scores = self._scores(parameters, x)
        rows = np.arange(len(y))
        margins = scores - scores[rows, y][:, None] + self.delta
        margins[rows, y] = 0.0
        return x, y, margins

    def _regularization(self, parameters: np.ndarray) -> float:
        return 0.5 * self.lambda_ * float(np.sum(parameters * parameters))

    def evaluate(self, parameters: np.ndarray, idx=None) -> float:
        """Objective averaged over the points in ``idx`` (all points if None)."""
        _, y, margins = self._margins(parameters, idx)
        n = max(len(y), 1)
        loss = float(np.clip(margins, 0.0, None).sum()) / n
        return loss + self._regularization(parameters)

    def gradient(self, parameters: np.ndarray, idx=None) -> np.ndarray:
        x, y, margins = self._margins(parameters, idx)
        return self._gradient_from_margins(parameters, x, y, margins)

    def evaluate_with_gradient(self, parameters: np.ndarray, idx=None) -> tuple[float, np.ndarray]:
        x, y, margins = self._margins(parameters, idx)
        n = max(len(y), 1)
        loss = float(np.clip(margins, 0.0, None).sum()) / n
        grad = self._gradient_from_margins(parameters, x, y, margins)
        return loss + self._regularization(parameters), grad

    def _gradient_from_margins(self, parameters, x, y, margins) -> np.ndarray:
        n = max(len(y), 1)
        active = (margins > 0).astype(float)
        rows = np.arange(len(y))
        # the true-class entry collects minus the number of violated margins
        active[rows, y] = -active.sum(axis=1)

        d = x.shape[1]
        grad = np.empty_like(parameters)
        grad[:d] = x.T @ active
        if self.fit_intercept:
            grad[d] = active.sum(axis=0)
        grad /= n
        grad += self.lambda_ * parameters
        return grad


class LinearSVM:
    """L2-regularized linear SVM for multi-class classification."""

    def __init__(
        self,
        num_classes: int = 2,
        lambda_: float = 0.0001,
        delta: float = 1.0,
        fit_intercept: bool = True,
        seed: Optional[int] = None,
    ):
        self.num_classes = int(num_classes)
        self.lambda_ = float(lambda_)
        self.delta = float(delta)
        self.fit_intercept = bool(fit_intercept)
        self.seed = seed
        self.parameters: Optional[np.ndarray] = None

    def __repr__(self) -> str:
        shape = None if self.parameters is None else self.parameters.shape
        return (
            f"LinearSVM(num_classes={self.num_classes}, lambda_={self.lambda_}, "
            f"delta={self.delta}, fit_intercept={self.fit_intercept}, parameters={shape})"
        )

    @property
    def is_trained(self) -> bool:
        return self.parameters is not None

    @property
    def num_features(self) -> int:
        """Dimensionality of the data the model was trained on."""
        if self.parameters is None:
            return 0
        return self.parameters.shape[0] - int(self.fit_intercept)

    def initial_point(self, n_features: int) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        rows = n_features + int(self.fit_intercept)
        return rng.standard_normal((rows, self.num_classes)) * INIT_SCALE

    def train(self, x: np.ndarray, y: np.ndarray, num_classes: int, optimizer) -> float:
        """Fit the parameters with ``optimizer`` and return the final objective."""
        if num_classes <= 1:
            raise ValueError("LinearSVM::Train(): numClasses must be greater than or equal to 2!")

        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=np.int64)
        if len(y) and int(y.max()) >= num_classes:
            raise ValueError(
                f"Labels must be less than the number of classes ({num_classes}); "
                f"found label {int(y.max())}."
            )
        self.num_classes = int(num_classes)

        function = LinearSVMFunction(
            x, y, self.num_classes,
            lambda_=self.lambda_,
            delta=self.delta,
            fit_intercept=self.fit_intercept,
        )

        expected = (x.shape[1] + int(self.fit_intercept), self.num_classes)
        if self.parameters is not None and self.parameters.shape == expected:
            start = self.parameters.copy()
            logger.info("Warm-starting from existing parameters %s", expected)
        else:
            start = self.initial_point(x.shape[1])

        self.parameters = optimizer.optimize(function, start)
        objective = function.evaluate(self.parameters)
        logger.info("Training finished; final objective %.6g", objective)
        return objective

    def class_scores(self, x: np.ndarray) -> np.ndarray:
        """Per-class scores, shaped ``(n_samples, num_classes)``."""
        if self.parameters is None:
            raise RuntimeError("The model isn't trained, call `train` first")
        x = np.asarray(x, dtype=float)
        d = self.num_features
        scores = x @ self.parameters[:d]
        if self.fit_intercept:
            scores = scores + self.parameters[d]
        return scores

    def classify(self, x: np.ndarray) -> np.ndarray:
        return np.argmax(self.class_scores(x), axis=1).astype(np.int64)

    def compute_accuracy(self, x: np.ndarray, y: np.ndarray) -> float:
        y = np.asarray(y, dtype=np.int64)
        if len(y) == 0:
            return 0.0
        return float(np.mean(self.classify(x) == y))


def model_meta(model: LinearSVM) -> dict:
    return {
        "num_classes": model.num_classes,
        "lambda": model.lambda_,
        "delta": model.delta,
        "fit_intercept": model.fit_intercept,
        "num_features": model.num_features,
        "parameters_shape": None if model.parameters is None else list(model.parameters.shape),
    }


def save_model(model: LinearSVM, path: str | Path) -> None:
    path = Path(path)
    save_pickle(model, path)
    save_json(model_meta(model), path.with_name(path.name + ".meta.json"))
    logger.info("Model saved -> %s", path)


def load_model(path: str | Path) -> LinearSVM:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot open model file '{path}'.")
    try:
        model = load_pickle(path)
    except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
        raise ValueError(f"Cannot load model from '{path}': {exc}") from exc
    if not isinstance(model, LinearSVM):
        raise TypeError(f"'{path}' does not contain a LinearSVM model (got {type(model).__name__}).")
    logger.info("Loaded model from %s: %r", path, model)

    meta_path = path.with_name(path.name + ".meta.json")
    if meta_path.exists():
        logger.debug("Model metadata: %s", load_json(meta_path))
    return model
