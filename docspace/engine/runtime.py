"""
DocSpace Runtime — Owns every long-lived collaborator.

Built from a DocSpaceConfig; nothing here is a module-level singleton.
Request handlers get per-request services from the runtime:

    runtime = Runtime(config)
    await runtime.startup()
    async with runtime.session() as session:
        tree = runtime.storage_tree(session)
        ...
    await runtime.shutdown()

Collaborators:
- engine / session factory   SQLAlchemy async engine for metadata
- blobs                      BlobStore (filesystem or S3)
- http                       shared httpx.AsyncClient for outbound calls
- api_signer                 bearer and capability tokens (auth.jwt_secret)
- editor_signer              document server payloads (onlyoffice.jwt_secret)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from docspace.db.base import create_engine_from_config
from docspace.db.session import build_session_factory, create_tables, ping, session_scope
from docspace.documents.conversion import ConversionGatewayClient
from docspace.documents.links import DocumentLinks
from docspace.documents.session import DocumentSessionManager
from docspace.documents.tokens import TokenSigner
from docspace.engine.attempt import attempt
from docspace.engine.config import DocSpaceConfig
from docspace.security.permissions import PermissionResolver
from docspace.security.sharing import SharingLedger
from docspace.storage.blob import BlobStore, create_blob_store
from docspace.storage.tree import StorageTree

logger = logging.getLogger("docspace.engine.runtime")


class Runtime:
    """
    Lifecycle:
        runtime = Runtime(config)
        await runtime.startup()    # engine, tables (optional), HTTP client
        ...
        await runtime.shutdown()   # close HTTP client, dispose engine
    """

    def __init__(
        self,
        config: DocSpaceConfig,
        blobs: Optional[BlobStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.config = config
        self.engine: AsyncEngine = engine or create_engine_from_config(config.database)
        self.session_factory = build_session_factory(self.engine)
        self.blobs: BlobStore = blobs or create_blob_store(config.storage)
        self._owns_http = http_client is None
        self.http: Optional[httpx.AsyncClient] = http_client

        self.api_signer = TokenSigner(config.auth.jwt_secret, config.auth.algorithm)
        self.editor_signer = TokenSigner(config.onlyoffice.jwt_secret)
        self.links = DocumentLinks(
            config.onlyoffice.backend_url,
            self.api_signer,
            config.onlyoffice.download_token_ttl_seconds,
        )
        self._started = False

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def startup(self, create_schema: bool = False) -> None:
        if self._started:
            logger.warning("Runtime already started")
            return

        logger.info(f"Starting {self.config.platform.name} ({self.config.platform.environment})")
        if create_schema:
            await create_tables(self.engine)
        if self.http is None:
            self.http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.onlyoffice.request_timeout, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            )
        self._started = True
        logger.info(f"Runtime started (storage={self.blobs.backend_name})")

    async def shutdown(self) -> None:
        if not self._started:
            return
        logger.info("Shutting down runtime...")
        if self.http is not None and self._owns_http:
            await self.http.aclose()
            self.http = None
        await self.engine.dispose()
        self._started = False
        logger.info("Runtime shut down")

    @property
    def started(self) -> bool:
        return self._started

    async def health(self) -> Dict[str, Any]:
        database = await attempt("database ping", ping(self.engine))
        storage = await attempt("storage ping", self.blobs.ping())
        storage_ok = storage.ok and bool(storage.value)
        healthy = database.ok and storage_ok
        return {
            "status": "ok" if healthy else "degraded",
            "database": database.ok,
            "storage": storage_ok,
            "storage_backend": self.blobs.backend_name,
        }

    # -----------------------------------------------------------------------
    # Per-request services
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with session_scope(self.session_factory) as session:
            yield session

    def conversion_client(self) -> ConversionGatewayClient:
        return ConversionGatewayClient(
            self._require_http(),
            self.config.onlyoffice.document_server_url,
            self.editor_signer,
            self.config.onlyoffice.request_timeout,
        )

    def storage_tree(self, session: AsyncSession) -> StorageTree:
        return StorageTree(
            session,
            self.blobs,
            self.config,
            resolver=PermissionResolver(session),
            links=self.links,
            conversion=self.conversion_client(),
            http_client=self._require_http(),
        )

    def sharing(self, session: AsyncSession) -> SharingLedger:
        return SharingLedger(session)

    def documents(self, session: AsyncSession) -> DocumentSessionManager:
        return DocumentSessionManager(
            session,
            self.blobs,
            self.config,
            self.editor_signer,
            self.links,
            self._require_http(),
        )

    def _require_http(self) -> httpx.AsyncClient:
        if self.http is None:
            raise RuntimeError("Runtime not started: HTTP client unavailable")
        return self.http
