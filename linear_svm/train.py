"""
train.py – LinearSVM command-line entry point.

Usage:
    python train.py --training data.csv --labels labels.csv \
        --lambda 0.1 --output_model lsvm_model.pkl
    python train.py --input_model lsvm_model.pkl --test test.csv \
        --predictions predictions.csv

Runs the pipeline:
  1. Validate options
  2. Load training data and labels (labels may be the last column of the data)
  3. Load an existing model or build a new one
  4. Train with L-BFGS or ParallelSGD
  5. Classify the test set, report accuracy, save predictions / scores
  6. Save the model
"""

import argparse
import logging
import math
import os
from typing import Optional

from linear_svm.data_io import load_labels, load_matrix, save_labels, save_matrix, split_labels
from linear_svm.evaluation import accuracy_report, log_report, number_of_classes
from linear_svm.model import LinearSVM, load_model, save_model
from linear_svm.optimizers import L_BFGS, ParallelSGD
from linear_svm.options import SVMOptions, build_options
from linear_svm.utils import param_string, setup_logging

logger = logging.getLogger(__name__)

DESCRIPTION = (
    "An implementation of an L2-regularized linear SVM for multiclass "
    "classification, trained with either the L-BFGS optimizer or ParallelSGD "
    "(stochastic gradient descent). Given labeled data, a model can be trained "
    "and saved for future use; or, a pre-trained model can be used to classify "
    "new points."
)

EPILOG = """\
The training data may have class labels as its last dimension; alternately,
--labels may name a separate file of labels.  For ParallelSGD, an iteration
is one pass of every worker over its share of the points.

Examples:
  train.py --training data.csv --labels labels.csv --lambda 0.1 \\
      --delta 1.0 --number_of_classes 0 --output_model lsvm_model.pkl
  train.py --input_model lsvm_model.pkl --test test.csv \\
      --predictions predictions.csv
"""

_LOGGING_ARGS = ("log_level", "log_file", "verbose")


def parse_args(argv: Optional[list[str]] = None):
    p = argparse.ArgumentParser(
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--training", "-t", default=None, help="Training set (the matrix of predictors, X)")
    p.add_argument("--labels", "-l", default=None, help="Labels for the points in the training set (y)")

    p.add_argument("--lambda", "-L", dest="lambda_", type=float, default=0.0001,
                   help="L2-regularization parameter for training")
    p.add_argument("--delta", "-d", type=float, default=1.0,
                   help="Margin of difference between correct class and other classes")
    p.add_argument("--number_of_classes", "-c", type=int, default=0,
                   help="Number of classes; if unspecified (or 0), the number of classes "
                        "found in the labels is used")
    p.add_argument("--no_intercept", "-N", action="store_true",
                   help="Do not add the intercept term to the model")
    p.add_argument("--optimizer", "-O", default="lbfgs", help="Optimizer to use for training ('lbfgs' or 'psgd')")
    p.add_argument("--tolerance", "-e", type=float, default=1e-10, help="Convergence tolerance for optimizer")
    p.add_argument("--max_iterations", "-n", type=int, default=10000,
                   help="Maximum iterations for optimizer (0 indicates no limit)")
    p.add_argument("--step_size", "-s", type=float, default=None,
                   help="Step size for ParallelSGD optimizer (default: 0.01)")
    p.add_argument("--shuffle", "-S", action="store_true",
                   help="Don't shuffle the order in which data points are visited for ParallelSGD")
    p.add_argument("--seed", type=int, default=None, help="Random seed for initialization and shuffling")

    p.add_argument("--input_model", "-m", default=None, help="Existing model (parameters)")
    p.add_argument("--output_model", "-M", default=None, help="Output for trained linear svm model")

    p.add_argument("--test", "-T", default=None, help="Matrix containing test dataset")
    p.add_argument("--test_labels", "-A", default=None, help="Matrix containing test labels")
    p.add_argument("--predictions", "-P", default=None,
                   help="Where to save the predictions for the test set")
    p.add_argument("--score", "-p", default=None,
                   help="Where to save the class scores for the test set")

    p.add_argument("--log-level", default="INFO", help="Logging level")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    p.add_argument("--verbose", "-v", action="store_true", help="Shorthand for --log-level DEBUG")
    return p.parse_args(argv)


def build_optimizer(options: SVMOptions, n_points: int):
    if options.optimizer == "lbfgs":
        logger.info("Training model with L-BFGS optimizer.")
        return L_BFGS(
            max_iterations=options.max_iterations,
            min_gradient_norm=options.tolerance,
        )

    n_threads = os.cpu_count() or 1
    logger.info("Training model with ParallelSGD optimizer.")
    return ParallelSGD(
        max_iterations=options.max_iterations,
        thread_share_size=max(1, math.ceil(n_points / n_threads)),
        tolerance=options.tolerance,
        shuffle=not options.shuffle,
        step_size=options.effective_step_size,
        n_threads=n_threads,
        seed=options.seed,
    )


def run(options: SVMOptions) -> dict:
    for msg in options.warnings():
        logger.warning(msg)

    training = options.training is not None

    # ------------------------------------------------------------------
    # 1. Training data and model
    # ------------------------------------------------------------------
    x_train = y_train = None
    if training:
        x_train = load_matrix(options.training)

    if options.input_model is not None:
        model = load_model(options.input_model)
    else:
        model = LinearSVM(seed=options.seed)

    if training and options.labels is not None:
        y_train = load_labels(options.labels)
        if x_train.shape[0] != len(y_train):
            raise ValueError("The labels must have the same number of points as the training dataset.")
    elif training:
        x_train, y_train = split_labels(x_train)

    if training:
        num_classes = number_of_classes(options.number_of_classes, y_train)
    else:
        num_classes = model.num_classes

    # ------------------------------------------------------------------
    # 2. Train
    # ------------------------------------------------------------------
    objective = None
    if training:
        model.lambda_ = options.lambda_
        model.delta = options.delta
        model.fit_intercept = options.fit_intercept
        model.num_classes = num_classes
        if options.seed is not None:
            model.seed = options.seed

        optimizer = build_optimizer(options, x_train.shape[0])
        objective = model.train(x_train, y_train, num_classes, optimizer)

    # ------------------------------------------------------------------
    # 3. Test
    # ------------------------------------------------------------------
    report = None
    predictions = None
    if options.test is not None:
        x_test = load_matrix(options.test)
        if not model.is_trained:
            raise ValueError("Cannot classify the test set: the model has not been trained.")

        if x_test.shape[1] != model.num_features:
            raise ValueError(
                f"Test data dimensionality ({x_test.shape[1]}) must be the same as the "
                f"dimensionality of the training data ({model.num_features})!"
            )

        if options.score is not None:
            logger.info("Calculating class score of points in '%s'.", options.test)
            save_matrix(model.class_scores(x_test), options.score)

        predictions = model.classify(x_test)

        if options.test_labels is not None:
            test_labels = load_labels(options.test_labels)
            if x_test.shape[0] != len(test_labels):
                raise ValueError(
                    f"Test data given with {param_string('test')} has {x_test.shape[0]} points, "
                    f"but labels in {param_string('test_labels')} have {len(test_labels)} labels!"
                )
            report = accuracy_report(predictions, test_labels, num_classes)
            log_report(report)

        if options.predictions is not None:
            logger.info("Predicting classes of points in '%s'.", options.test)
            save_labels(predictions, options.predictions)

    # ------------------------------------------------------------------
    # 4. Save model
    # ------------------------------------------------------------------
    if options.output_model is not None:
        save_model(model, options.output_model)

    return {
        "num_classes": num_classes,
        "objective": objective,
        "accuracy": report,
        "predictions": predictions,
    }


def main(argv: Optional[list[str]] = None):
    args = parse_args(argv)
    setup_logging("DEBUG" if args.verbose else args.log_level, args.log_file)

    params = {k: v for k, v in vars(args).items() if k not in _LOGGING_ARGS}
    try:
        options = build_options(**params)
        return run(options)
    except (ValueError, TypeError, RuntimeError, OSError) as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
