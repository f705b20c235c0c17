"""
Command-line interface for polyavg.

This module provides CLI tools for:
- Averaging a model spectrum from a config file
- Checking weight normalization
"""

__all__ = []
