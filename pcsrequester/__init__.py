"""HTTP client helpers with resumable multi-connection downloads and block uploads."""

__version__ = "0.1.0"