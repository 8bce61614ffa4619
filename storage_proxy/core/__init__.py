"""
Core proxy rules.

This module is framework-agnostic - it doesn't import FastAPI or boto3.
It holds the path-to-key and key-to-content-type rules the HTTP layer
applies to every request.
"""

from .keys import DEFAULT_CONTENT_TYPE, KeyNamespace, content_type_for, object_key

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "KeyNamespace",
    "content_type_for",
    "object_key",
]
