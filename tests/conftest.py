"""
DocSpace Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Every test gets its own SQLite database and blob directory under tmp_path.
Outbound HTTP (document server, remote downloads) goes through an
httpx.MockTransport backed by RemoteDocuments.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Union

import httpx
import pytest
import pytest_asyncio

from docspace.db.base import create_engine_from_config
from docspace.db.models import User
from docspace.db.session import build_session_factory, create_tables
from docspace.documents.conversion import ConversionGatewayClient
from docspace.documents.links import DocumentLinks
from docspace.documents.session import DocumentSessionManager
from docspace.documents.tokens import TokenSigner
from docspace.engine.config import DocSpaceConfig, parse_config
from docspace.engine.context import clear_request_context
from docspace.storage.blob import FilesystemBlobStore
from docspace.storage.tree import StorageTree

DOCUMENT_SERVER = "http://docs.test"
BACKEND = "http://api.test"


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Reset the loaded-config singleton and request context between tests."""
    import docspace.engine.config as cfg_mod

    cfg_mod._config = None
    monkeypatch.delenv("DOCSPACE_CONFIG", raising=False)
    yield
    clear_request_context()


@pytest.fixture
def config(tmp_path) -> DocSpaceConfig:
    return parse_config({
        "database": {"url": f"sqlite+aiosqlite:///{tmp_path / 'docspace.db'}"},
        "storage": {"backend": "filesystem", "root": str(tmp_path / "blobs")},
        "onlyoffice": {
            "document_server_url": DOCUMENT_SERVER,
            "backend_url": BACKEND,
            "jwt_secret": "editor-secret",
        },
        "auth": {"jwt_secret": "api-secret"},
        "uploads": {"max_upload_size_mb": 1},
    })


@pytest.fixture
def blobs(config) -> FilesystemBlobStore:
    return FilesystemBlobStore(config.storage.root)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(config):
    engine = create_engine_from_config(config.database)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = build_session_factory(engine)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(session) -> Dict[str, User]:
    """alice, bob and carol, committed."""
    created = {
        name: User(username=name, display_name=name.capitalize())
        for name in ("alice", "bob", "carol")
    }
    session.add_all(created.values())
    await session.commit()
    return created


# ---------------------------------------------------------------------------
# Outbound HTTP
# ---------------------------------------------------------------------------

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class RemoteDocuments:
    """Canned responses for outbound requests, keyed by URL without query."""

    def __init__(self):
        self.routes: Dict[str, Reply] = {}
        self.requests: List[httpx.Request] = []

    def serve(self, url: str, content: bytes, status_code: int = 200) -> None:
        self.routes[url] = httpx.Response(status_code, content=content)

    def reply_json(self, url: str, payload: Any, status_code: int = 200) -> None:
        self.routes[url] = httpx.Response(status_code, json=payload)

    def fail(self, url: str, exc: Exception) -> None:
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc
        self.routes[url] = raise_error

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = str(request.url).split("?", 1)[0]
        reply = self.routes.get(key)
        if reply is None:
            return httpx.Response(404, content=b"not found")
        if callable(reply):
            return reply(request)
        return httpx.Response(reply.status_code, content=reply.content, headers=reply.headers)

    def json_bodies(self, url: str) -> List[Dict[str, Any]]:
        return [
            json.loads(r.content)
            for r in self.requests
            if str(r.url).split("?", 1)[0] == url
        ]


@pytest.fixture
def remote() -> RemoteDocuments:
    return RemoteDocuments()


@pytest_asyncio.fixture
async def http_client(remote):
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote.handle)) as client:
        yield client


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def api_signer(config) -> TokenSigner:
    return TokenSigner(config.auth.jwt_secret)


@pytest.fixture
def editor_signer(config) -> TokenSigner:
    return TokenSigner(config.onlyoffice.jwt_secret)


@pytest.fixture
def links(config, api_signer) -> DocumentLinks:
    return DocumentLinks(config.onlyoffice.backend_url, api_signer, 3600)


@pytest.fixture
def conversion(http_client, config, editor_signer) -> ConversionGatewayClient:
    return ConversionGatewayClient(http_client, config.onlyoffice.document_server_url, editor_signer)


@pytest.fixture
def tree(session, blobs, config, links, conversion, http_client) -> StorageTree:
    return StorageTree(
        session, blobs, config, links=links, conversion=conversion, http_client=http_client
    )


@pytest.fixture
def documents(session, blobs, config, editor_signer, links, http_client) -> DocumentSessionManager:
    return DocumentSessionManager(session, blobs, config, editor_signer, links, http_client)
