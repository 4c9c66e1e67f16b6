"""Personalized income-opportunity discovery and scoring."""

__version__ = "0.1.0"
