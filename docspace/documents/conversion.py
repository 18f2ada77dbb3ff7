"""
DocSpace Conversion Gateway — Synchronous calls to the document server's
conversion endpoint, plus the remote download helper shared with the
editor callback.

Request body (signed with the document server secret):
    {"async": false, "filetype": "docx", "outputtype": "pdf",
     "url": "<source url>", "key": "<temporary key>", "title": "<name>",
     "token": "<jwt>"}

Response: {"endConvert": true, "fileUrl": "...", "percent": 100} on
success; {"error": <negative code>} on failure.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx

from docspace.documents.tokens import TokenSigner
from docspace.engine.errors import ConversionFailedError, RemoteFetchError

logger = logging.getLogger("docspace.documents.conversion")

CONVERT_PATH = "/ConvertService.ashx"


async def fetch_remote_bytes(
    client: httpx.AsyncClient,
    url: str,
    timeout: Optional[float] = None,
) -> bytes:
    """GET ``url`` and return the body. Any failure is a RemoteFetchError."""
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        raise RemoteFetchError(f"Download from {url} failed: {e}", cause=e) from e
    if response.status_code >= 400:
        raise RemoteFetchError(
            f"Download from {url} returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response.content


class ConversionGatewayClient:
    """Converts a document reachable by URL into another format."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        document_server_url: str,
        signer: TokenSigner,
        timeout: float = 60.0,
    ):
        self._client = client
        self._endpoint = document_server_url.rstrip("/") + CONVERT_PATH
        self._signer = signer
        self._timeout = timeout

    @staticmethod
    def temporary_key() -> str:
        return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

    def build_request(
        self, source_url: str, source_ext: str, target_ext: str, title: str
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "async": False,
            "filetype": source_ext,
            "outputtype": target_ext,
            "url": source_url,
            "key": self.temporary_key(),
            "title": title,
        }
        payload["token"] = self._signer.sign(payload)
        return payload

    async def convert(
        self, source_url: str, source_ext: str, target_ext: str, title: str
    ) -> str:
        """
        Run a conversion and return the URL of the converted file.

        Raises ConversionFailedError on transport failure, a non-2xx status,
        a non-zero ``error`` code, or a response without ``fileUrl``.
        """
        payload = self.build_request(source_url, source_ext, target_ext, title)
        logger.info(f"Converting {title!r} from {source_ext} to {target_ext}")

        try:
            response = await self._client.post(
                self._endpoint,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise ConversionFailedError(f"Conversion request failed: {e}", cause=e) from e

        if not response.is_success:
            raise ConversionFailedError(
                f"Conversion service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ConversionFailedError("Conversion service returned invalid JSON", cause=e) from e

        error_code = data.get("error") if isinstance(data, dict) else None
        if error_code:
            raise ConversionFailedError(
                f"Conversion failed with error code {error_code}",
                conversion_error=error_code,
            )

        file_url = data.get("fileUrl") if isinstance(data, dict) else None
        if not file_url:
            raise ConversionFailedError("Conversion response has no fileUrl")

        logger.info(f"Conversion of {title!r} finished")
        return file_url
