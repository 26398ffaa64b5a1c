"""Candidate-driven task loop for AI coding assistants."""

__version__ = "0.4.0"
