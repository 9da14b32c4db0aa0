"""LessonLoop: recurring lesson slots, lesson generation and monthly billing."""

__version__ = "1.0.0"
