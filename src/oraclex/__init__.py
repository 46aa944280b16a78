"""OracleX chain mirror - contract events to DuckDB."""

__version__ = "0.1.0"
