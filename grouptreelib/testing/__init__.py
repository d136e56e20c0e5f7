"""Testing utilities for GroupTreeLib consumers."""

from .fixtures import DirectoryBuilder, edge_tuples, member_names, object_key

__all__ = ['DirectoryBuilder', 'edge_tuples', 'member_names', 'object_key']
