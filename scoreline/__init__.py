"""Scoreline: football match sync and prediction settlement."""

__version__ = "1.0.0"
