"""
Infrastructure layer - external service integrations.

- storage: Object storage (S3/R2/MinIO, plus an in-memory bucket)

These wrappers translate SDK calls and errors into the small storage
abstraction the proxy depends on.
"""
