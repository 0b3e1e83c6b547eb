"""
Word to PDF conversion service package.

This module provides a FastAPI application exposing a single conversion
endpoint at `/convertFile` plus liveness probes at `/` and `/health`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
