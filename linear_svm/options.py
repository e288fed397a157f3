"""
Typed, validated command-line options.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from linear_svm.utils import param_string

OPTIMIZERS = ("lbfgs", "psgd")
DEFAULT_STEP_SIZE = 0.01


class SVMOptions(BaseModel):
    """Validated options for one training and/or testing run."""

    # Training
    training: Optional[Path] = Field(default=None, description="Training set (matrix of predictors, X)")
    labels: Optional[Path] = Field(default=None, description="Labels for the training set (y)")

    # Optimizer
    max_iterations: int = Field(default=10000, description="Maximum optimizer iterations (0 = no limit)")
    tolerance: float = Field(default=1e-10, description="Convergence tolerance")
    optimizer: str = Field(default="lbfgs", description="'lbfgs' or 'psgd'")
    lambda_: float = Field(default=0.0001, description="L2-regularization parameter")
    number_of_classes: int = Field(default=0, description="Number of classes (0 = infer from labels)")
    delta: float = Field(default=1.0, description="Margin between correct class and other classes")
    step_size: Optional[float] = Field(default=None, description="Step size for ParallelSGD")
    no_intercept: bool = False
    shuffle: bool = Field(default=False, description="Don't shuffle the ParallelSGD visitation order")
    seed: Optional[int] = None

    # Model loading/saving
    input_model: Optional[Path] = None
    output_model: Optional[Path] = None

    # Testing
    test: Optional[Path] = None
    test_labels: Optional[Path] = None
    predictions: Optional[Path] = None
    score: Optional[Path] = None

    @model_validator(mode="before")
    @classmethod
    def _training_or_model(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("training") is None and data.get("input_model") is None:
            raise ValueError(
                f"Must specify at least one of {param_string('training')} or "
                f"{param_string('input_model')}!"
            )
        return data

    @field_validator("max_iterations")
    @classmethod
    def _max_iterations(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_iterations must be positive or zero")
        return v

    @field_validator("tolerance")
    @classmethod
    def _tolerance(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError("tolerance must be positive or zero")
        return v

    @field_validator("optimizer")
    @classmethod
    def _optimizer(cls, v: str) -> str:
        if v not in OPTIMIZERS:
            raise ValueError("unknown optimizer")
        return v

    @field_validator("lambda_")
    @classmethod
    def _lambda(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError("lambda must be positive or zero")
        return v

    @field_validator("number_of_classes")
    @classmethod
    def _number_of_classes(cls, v: int) -> int:
        if v < 0:
            raise ValueError(
                "number of classes must be greater than or equal to 0 "
                "(equal to 0 in case of unspecified.)"
            )
        return v

    @field_validator("delta")
    @classmethod
    def _delta(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError("Margin of difference between correct class and other classes")
        return v

    @field_validator("step_size")
    @classmethod
    def _step_size(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0.0:
            raise ValueError("step size must be positive")
        return v

    @property
    def fit_intercept(self) -> bool:
        return not self.no_intercept

    @property
    def effective_step_size(self) -> float:
        return DEFAULT_STEP_SIZE if self.step_size is None else self.step_size

    def warnings(self) -> list[str]:
        """Non-fatal problems with the combination of options."""
        out: list[str] = []
        if self.output_model is None and self.predictions is None and self.score is None:
            out.append(
                f"none of {param_string('output_model')}, {param_string('predictions')}, "
                f"or {param_string('score')} are specified; no output will be saved!"
            )
        if self.test is None:
            for name in ("predictions", "score", "test_labels"):
                if getattr(self, name) is not None:
                    out.append(
                        f"{param_string(name)} ignored because {param_string('test')} is not specified."
                    )
        if self.optimizer != "psgd":
            if self.step_size is not None:
                out.append(f"{param_string('step_size')} ignored because optimizer type is not 'psgd'.")
            if self.shuffle:
                out.append(f"{param_string('shuffle')} ignored because optimizer type is not 'psgd'.")
        return out


def build_options(**kwargs) -> SVMOptions:
    """Construct :class:`SVMOptions`, reporting the first failure as ``ValueError``."""
    try:
        return SVMOptions(**kwargs)
    except ValidationError as exc:
        err = exc.errors()[0]
        cause = (err.get("ctx") or {}).get("error")
        raise ValueError(str(cause) if cause is not None else err["msg"]) from None
