"""
Backend URLs handed to the document server.

The document server fetches document bytes and posts save callbacks over
plain HTTP, without the user's bearer token. The download URL therefore
carries its own short-lived capability token.
"""

from __future__ import annotations

from urllib.parse import urlencode

from docspace.documents.tokens import TokenSigner


class DocumentLinks:
    def __init__(self, backend_url: str, signer: TokenSigner, download_ttl_seconds: int = 86400):
        self._base = backend_url.rstrip("/")
        self._signer = signer
        self._ttl = download_ttl_seconds

    def download_url(self, file_id: int) -> str:
        token = self._signer.issue_download_token(file_id, self._ttl)
        query = urlencode({"token": token})
        return f"{self._base}/folders/files/{file_id}/onlyoffice-download?{query}"

    def callback_url(self, file_id: int) -> str:
        return f"{self._base}/onlyoffice/callback/{file_id}"

    def authenticated_download_url(self, file_id: int) -> str:
        """Download route for API clients that send their own bearer token."""
        return f"{self._base}/folders/files/{file_id}/download"
