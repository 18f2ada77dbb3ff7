"""DocSpace Storage — Blob store adapters and the folder/file tree."""

from docspace.storage.blob import BlobStore, FilesystemBlobStore, S3BlobStore, create_blob_store  # noqa: F401

__all__ = ["BlobStore", "FilesystemBlobStore", "S3BlobStore", "create_blob_store"]
