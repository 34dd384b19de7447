"""Assignment/quiz submission & auto-grading engine."""

__version__ = "0.1.0"
