"""
Caching layer for GroupTreeLib - optional optimization for batch runs.

Wraps any directory client so that groups nested under many roots are
listed from the directory once per batch instead of once per root.
"""

from .adapter import CachingDirectoryClient

__all__ = [
    'CachingDirectoryClient',
]
