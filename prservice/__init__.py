"""Pull request reviewer assignment: domain, services, SQLite storage and a Flask API."""

__version__ = "0.1.0"

__all__ = ["__version__"]