"""Bump / bump# texture generator for X-Ray engine games."""

__version__ = "0.4.0"
