"""
HTML to PDF Conversion Service package.

This module provides a FastAPI application that spools HTML uploads and
converts them to PDF with a bounded pool of external renderer processes.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
