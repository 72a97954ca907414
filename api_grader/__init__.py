"""Coverage-based API contract grading."""

__version__ = "0.1.0"
