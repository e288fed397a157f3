"""
Tests for linear_svm/model.py.
Optimizers are real but run on small, well-separated datasets.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock

import numpy as np
import pytest

from linear_svm.model import (
    INIT_SCALE,
    LinearSVM,
    LinearSVMFunction,
    load_model,
    save_model,
)
from linear_svm.optimizers import L_BFGS
from linear_svm.utils import save_pickle


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _blobs(n=90, n_features=2, n_classes=3, seed=0):
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 8.0], [8.0, 0.0], [-8.0, -8.0]])[:n_classes, :n_features]
    y = np.arange(n) % n_classes
    x = centers[y] + rng.normal(0.0, 0.5, size=(n, n_features))
    return x, y


def _numeric_gradient(f, params, eps=1e-6):
    grad = np.zeros_like(params)
    for idx in np.ndindex(params.shape):
        step = np.zeros_like(params)
        step[idx] = eps
        grad[idx] = (f(params + step) - f(params - step)) / (2 * eps)
    return grad


# ---------------------------------------------------------------------------
# LinearSVMFunction
# ---------------------------------------------------------------------------

class TestLinearSVMFunction:
    def test_zero_parameters_objective(self):
        # all scores equal -> every wrong class contributes delta
        x, y = _blobs(n=12)
        fn = LinearSVMFunction(x, y, 3, lambda_=0.0, delta=1.0)
        params = np.zeros((3, 3))
        assert fn.evaluate(params) == pytest.approx(2.0)

    def test_regularization_term(self):
        x, y = _blobs(n=12)
        fn = LinearSVMFunction(x, y, 3, lambda_=2.0, delta=0.0)
        params = np.ones((3, 3))
        hinge = LinearSVMFunction(x, y, 3, lambda_=0.0, delta=0.0).evaluate(params)
        assert fn.evaluate(params) == pytest.approx(hinge + 0.5 * 2.0 * 9)

    @pytest.mark.parametrize("fit_intercept", [True, False])
    def test_gradient_matches_finite_differences(self, fit_intercept):
        rng = np.random.default_rng(3)
        x = rng.normal(size=(20, 4))
        y = rng.integers(0, 3, 20)
        fn = LinearSVMFunction(x, y, 3, lambda_=0.1, delta=1.0, fit_intercept=fit_intercept)
        params = rng.normal(size=(4 + int(fit_intercept), 3))
        np.testing.assert_allclose(
            fn.gradient(params), _numeric_gradient(fn.evaluate, params), atol=1e-5
        )

    def test_evaluate_with_gradient_consistent(self):
        rng = np.random.default_rng(4)
        x = rng.normal(size=(10, 3))
        y = rng.integers(0, 2, 10)
        fn = LinearSVMFunction(x, y, 2)
        params = rng.normal(size=(4, 2))
        obj, grad = fn.evaluate_with_gradient(params)
        assert obj == pytest.approx(fn.evaluate(params))
        np.testing.assert_allclose(grad, fn.gradient(params))

    def test_subset_evaluation(self):
        x, y = _blobs(n=12)
        fn = LinearSVMFunction(x, y, 3, lambda_=0.0)
        params = np.random.default_rng(0).normal(size=(3, 3))
        single = LinearSVMFunction(x[[5]], y[[5]], 3, lambda_=0.0)
        assert fn.evaluate(params, [5]) == pytest.approx(single.evaluate(params))
        assert fn.gradient(params, [5]).shape == params.shape

    def test_num_functions(self):
        x, y = _blobs(n=15)
        assert LinearSVMFunction(x, y, 3).num_functions == 15


# ---------------------------------------------------------------------------
# LinearSVM
# ---------------------------------------------------------------------------

class TestLinearSVM:
    def test_defaults(self):
        m = LinearSVM()
        assert m.lambda_ == pytest.approx(0.0001)
        assert m.delta == pytest.approx(1.0)
        assert m.fit_intercept is True
        assert not m.is_trained
        assert m.num_features == 0

    def test_initial_point_shape_and_scale(self):
        m = LinearSVM(num_classes=4, seed=0)
        w = m.initial_point(6)
        assert w.shape == (7, 4)
        assert np.abs(w).max() < 10 * INIT_SCALE

    def test_initial_point_without_intercept(self):
        m = LinearSVM(num_classes=2, fit_intercept=False, seed=0)
        assert m.initial_point(6).shape == (6, 2)

    def test_train_rejects_single_class(self):
        x, y = _blobs(n=6)
        with pytest.raises(ValueError, match="numClasses must be greater than or equal to 2"):
            LinearSVM().train(x, np.zeros(6, dtype=int), 1, L_BFGS())

    def test_train_rejects_labels_out_of_range(self):
        x, y = _blobs(n=9)
        with pytest.raises(ValueError):
            LinearSVM().train(x, y, 2, L_BFGS())

    def test_train_lbfgs_separates_blobs(self):
        x, y = _blobs()
        m = LinearSVM(seed=1)
        objective = m.train(x, y, 3, L_BFGS(max_iterations=200))
        assert m.parameters.shape == (3, 3)
        assert m.num_features == 2
        assert np.isfinite(objective)
        assert m.compute_accuracy(x, y) > 0.95

    def test_train_without_intercept(self):
        x, y = _blobs()
        m = LinearSVM(fit_intercept=False, seed=1)
        m.train(x, y, 3, L_BFGS(max_iterations=200))
        assert m.parameters.shape == (2, 3)
        assert m.num_features == 2

    def test_warm_start_uses_existing_parameters(self):
        x, y = _blobs()
        m = LinearSVM(seed=1)
        existing = np.full((3, 3), 0.25)
        m.parameters = existing.copy()
        opt = MagicMock()
        opt.optimize.side_effect = lambda fn, start: start
        m.train(x, y, 3, opt)
        np.testing.assert_array_equal(opt.optimize.call_args[0][1], existing)

    def test_shape_mismatch_reinitializes(self):
        x, y = _blobs()
        m = LinearSVM(seed=1)
        m.parameters = np.ones((10, 2))
        opt = MagicMock()
        opt.optimize.side_effect = lambda fn, start: start
        m.train(x, y, 3, opt)
        assert m.parameters.shape == (3, 3)

    def test_classify_untrained_raises(self):
        with pytest.raises(RuntimeError):
            LinearSVM().classify(np.zeros((2, 2)))

    def test_class_scores_and_classify(self):
        m = LinearSVM(num_classes=2)
        # class 0 score = x0, class 1 score = x1, intercept favours class 1
        m.parameters = np.array([[1.0, 0.0], [0.0, 1.0], [0.0, 0.5]])
        x = np.array([[2.0, 1.0], [1.0, 1.0]])
        scores = m.class_scores(x)
        np.testing.assert_allclose(scores, [[2.0, 1.5], [1.0, 1.5]])
        np.testing.assert_array_equal(m.classify(x), [0, 1])

    def test_compute_accuracy(self):
        m = LinearSVM(num_classes=2, fit_intercept=False)
        m.parameters = np.eye(2)
        x = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 0.0]])
        assert m.compute_accuracy(x, np.array([0, 1, 1])) == pytest.approx(2 / 3)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_save_and_load(self, tmp_path):
        m = LinearSVM(num_classes=3, lambda_=0.5, delta=2.0, fit_intercept=False)
        m.parameters = np.arange(6, dtype=float).reshape(2, 3)
        path = tmp_path / "models" / "svm.pkl"
        save_model(m, path)
        loaded = load_model(path)
        assert isinstance(loaded, LinearSVM)
        assert loaded.lambda_ == pytest.approx(0.5)
        assert loaded.fit_intercept is False
        np.testing.assert_array_equal(loaded.parameters, m.parameters)

    def test_meta_sidecar_written(self, tmp_path):
        m = LinearSVM(num_classes=2)
        m.parameters = np.zeros((4, 2))
        path = tmp_path / "svm.pkl"
        save_model(m, path)
        meta = json.loads((tmp_path / "svm.pkl.meta.json").read_text(encoding="utf-8"))
        assert meta["num_features"] == 3
        assert meta["parameters_shape"] == [4, 2]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_model(tmp_path / "missing.pkl")

    def test_wrong_object_type(self, tmp_path):
        path = tmp_path / "other.pkl"
        save_pickle({"not": "a model"}, path)
        with pytest.raises(TypeError):
            load_model(path)

    def test_corrupt_file_raises_value_error(self, tmp_path):
        path = tmp_path / "corrupt.pkl"
        path.write_bytes(b"not a pickle at all")
        with pytest.raises(ValueError, match="Cannot load model from"):
            load_model(path)

    def test_empty_file_raises_value_error(self, tmp_path):
        path = tmp_path / "empty.pkl"
        path.write_bytes(b"")
        with pytest.raises(ValueError, match="Cannot load model from"):
            load_model(path)

    def test_meta_sidecar_logged_on_load(self, tmp_path, caplog):
        m = LinearSVM(num_classes=2)
        m.parameters = np.zeros((3, 2))
        path = tmp_path / "svm.pkl"
        save_model(m, path)
        caplog.set_level(logging.DEBUG, logger="linear_svm.model")
        load_model(path)
        assert "Model metadata:" in caplog.text
        assert "parameters_shape" in caplog.text
