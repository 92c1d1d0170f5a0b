"""Portal health checks: probe execution, aggregation and result storage."""

__version__ = "0.1.0"
