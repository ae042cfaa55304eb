"""schemascope: request and response schemas inferred from Python source."""

__version__ = "0.1.0"
