"""Verisource: verified web sources and citation validation for grounded answers."""

__version__ = "0.1.0"
