"""
Command-line interface (``metrics-sync``).
"""

from .main import cli

__all__ = ['cli']
