"""
Optimizer back-ends for LinearSVM training.

Both optimizers expose ``optimize(function, initial_point)`` and return the
optimized parameter matrix.  ``function`` is a decomposable objective such as
:class:`linear_svm.model.LinearSVMFunction`.
"""

from __future__ import annotations

import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
from scipy.optimize import minimize

logger = logging.getLogger(__name__)

_NO_LIMIT = np.iinfo(np.int32).max


class L_BFGS:
    """Limited-memory BFGS through ``scipy.optimize.minimize``.

    ``max_iterations == 0`` means no iteration limit.  ``min_gradient_norm``
    is the projected-gradient stopping threshold and ``factr`` the relative
    objective-decrease threshold.
    """

    def __init__(
        self,
        max_iterations: int = 10000,
        min_gradient_norm: float = 1e-6,
        num_basis: int = 10,
        factr: float = 1e-15,
    ):
        self.max_iterations = int(max_iterations)
        self.min_gradient_norm = float(min_gradient_norm)
        self.num_basis = int(num_basis)
        self.factr = float(factr)

    def optimize(self, function, initial_point: np.ndarray) -> np.ndarray:
        shape = initial_point.shape

        def fun(flat: np.ndarray):
            objective, grad = function.evaluate_with_gradient(flat.reshape(shape))
            return objective, grad.ravel()

        max_iter = self.max_iterations or _NO_LIMIT
        result = minimize(
            fun,
            np.array(initial_point, dtype=float).ravel(),
            jac=True,
            method="L-BFGS-B",
            options={
                "maxiter": max_iter,
                "maxfun": max(max_iter, 15000),
                "maxcor": self.num_basis,
                "gtol": self.min_gradient_norm,
                "ftol": self.factr,
            },
        )
        logger.info(
            "L-BFGS finished after %d iterations: %s (objective %.6g)",
            result.nit, result.message, result.fun,
        )
        return result.x.reshape(shape)


class ParallelSGD:
    """Lock-free parallel SGD with a constant step size.

    Every iteration checks the full objective for convergence, then each of
    ``n_threads`` workers applies single-point gradient steps for its share of
    the (optionally shuffled) visitation order to the shared iterate.
    """

    def __init__(
        self,
        max_iterations: int = 10000,
        thread_share_size: Optional[int] = None,
        tolerance: float = 1e-5,
        shuffle: bool = True,
        step_size: float = 0.01,
        n_threads: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.max_iterations = int(max_iterations)
        self.thread_share_size = thread_share_size
        self.tolerance = float(tolerance)
        self.shuffle = bool(shuffle)
        self.step_size = float(step_size)
        self.n_threads = n_threads or os.cpu_count() or 1
        self.seed = seed

    def share_size(self, num_functions: int) -> int:
        if self.thread_share_size:
            return int(self.thread_share_size)
        return max(1, math.ceil(num_functions / self.n_threads))

    def _run_share(self, function, iterate: np.ndarray, indices: np.ndarray) -> None:
        for j in indices:
            grad = function.gradient(iterate, [j])
            iterate -= self.step_size * grad

    def optimize(self, function, initial_point: np.ndarray) -> np.ndarray:
        iterate = np.array(initial_point, dtype=float, copy=True)
        n = function.num_functions
        share = self.share_size(n)
        rng = np.random.default_rng(self.seed)
        order = np.arange(n)
        last_objective = math.inf

        iteration = 0
        with ThreadPoolExecutor(max_workers=self.n_threads) as pool:
            while self.max_iterations == 0 or iteration < self.max_iterations:
                objective = function.evaluate(iterate)
                if not math.isfinite(objective):
                    logger.warning(
                        "ParallelSGD: converged to %s; terminating with failure. "
                        "Try a smaller step size?", objective,
                    )
                    return iterate
                if abs(last_objective - objective) < self.tolerance:
                    logger.info(
                        "ParallelSGD: minimized within tolerance %g; terminating optimization.",
                        self.tolerance,
                    )
                    return iterate
                last_objective = objective

                if self.shuffle:
                    rng.shuffle(order)
                futures = [
                    pool.submit(self._run_share, function, iterate, order[t * share:(t + 1) * share])
                    for t in range(self.n_threads)
                    if t * share < n
                ]
                for fut in futures:
                    fut.result()
                iteration += 1
                logger.debug("ParallelSGD: iteration %d, objective %.6g", iteration, objective)

        logger.info(
            "ParallelSGD: maximum iterations (%d) reached; terminating optimization.",
            self.max_iterations,
        )
        return iterate
