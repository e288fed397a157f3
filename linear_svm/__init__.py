"""
Linear multi-class SVM trainer with L-BFGS and parallel SGD back-ends.
"""

__version__ = "1.0.0"
