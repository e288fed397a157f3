"""
train.py  –  wrapper at the project root.

Lets the CLI run from a checkout without installing the package:
    python train.py --training data.csv --output_model model.pkl

All logic lives in linear_svm.train.
"""
from linear_svm.train import main

if __name__ == "__main__":
    main()
