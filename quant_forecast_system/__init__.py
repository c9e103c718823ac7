"""
Quant Forecast System.

Turns intraday price bars into normalized feature/label windows and
orchestrates training, evaluation and inference of sequence-regression
models on them.
"""

__version__ = "1.0.0"
