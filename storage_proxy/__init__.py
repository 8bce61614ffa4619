"""
Storage Proxy - serve an object-storage bucket as a flat HTTP file server.

This package contains the complete application:
- core: Framework-agnostic key and content-type rules
- infrastructure: Object storage backends (S3-compatible, in-memory)
- api: FastAPI routes
- config: Application configuration
"""

__version__ = "0.1.0"
