"""Session lifecycle and abuse-control middleware for FastAPI services."""

__version__ = "1.0.0"
