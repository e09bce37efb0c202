"""
Shared constants for stroke grouping and digit recognition.
"""

from __future__ import annotations

from typing import List

# Output vocabulary of every classifier: index i is the digit i.
DIGIT_LABELS: List[str] = [str(digit) for digit in range(10)]
NUM_CLASSES = len(DIGIT_LABELS)

# Sentinel digit for a group that could not be classified.
FAILED_DIGIT = -1

# Canonical image geometry (MNIST style: 20x20 glyph centred in 28x28).
CANONICAL_SIZE = 28
INNER_SIZE = 20
INPUT_DIM = CANONICAL_SIZE * CANONICAL_SIZE

# MNIST dataset statistics used for standardisation.
MNIST_MEAN = 0.1307
MNIST_STD = 0.3081

# Embedded perceptron dimensions.
HIDDEN_DIM = 300
THETA1_FILE = "theta1.json"
THETA2_FILE = "theta2.json"

# 3x3 smoothing kernel applied to small sources before binarisation.
SMOOTHING_KERNEL = (
    (0.0625, 0.125, 0.0625),
    (0.125, 0.25, 0.125),
    (0.0625, 0.125, 0.0625),
)

LOW_CONFIDENCE_THRESHOLD = 0.7
BUFFER_POOL_SIZE = 10

# Environment variables read through python-dotenv.
ENV_DEBUG = "STROKE_DIGITS_DEBUG"
ENV_LOG_DIR = "STROKE_DIGITS_LOG_DIR"
LOGGER_NAME = "stroke_digits"
