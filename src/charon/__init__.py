"""Charon - exit automation for prediction-market outcome-token positions."""

__version__ = "0.1.0"
