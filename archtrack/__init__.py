"""Project staffing and team allocation backend."""

__version__ = "0.1.0"
