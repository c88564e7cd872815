"""healthmon — periodic HTTP health monitoring with uptime and error analytics."""

__version__ = "0.1.0"
