"""Utility helpers"""

from fedcycle.utils.serialization import serialize_diff, deserialize_diff

__all__ = ['serialize_diff', 'deserialize_diff']
