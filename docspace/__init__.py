"""
DocSpace — Permission-aware file/folder store with collaborative editing.

Packages:
    engine     config, errors, logging, request context, runtime
    db         SQLAlchemy models and session helpers
    storage    blob store adapters and the folder/file tree
    security   permission resolution and sharing
    documents  editor sessions, save-back callbacks, conversion
    api        FastAPI application
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "storage", "security", "documents", "api"]
