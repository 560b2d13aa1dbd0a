"""devtrail: answer questions over a project's development history."""

__all__ = ["__version__"]

__version__ = "0.1.0"
