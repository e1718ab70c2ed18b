"""tensorweave: turn visual ML workflow graphs into PyTorch source code."""

__version__ = "0.1.0"
