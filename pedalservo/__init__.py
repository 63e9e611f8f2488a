"""Debounced pedal and button inputs, a mode state machine and an MKS servo serial client."""

__version__ = "0.1.0"
__all__ = ["__version__"]