"""
DocSpace Document Sessions — Editor descriptors and save-back callbacks.

Flow:
    1. A client asks for an editor config for file N.
       → effective permission resolved, descriptor built and signed
    2. The document server fetches bytes from the capability download URL.
    3. Users edit; the document server posts status callbacks to
       /onlyoffice/callback/N.
    4. MUST_SAVE (2) and FORCE_SAVE (6) carry a URL to the edited bytes.
       They are downloaded, written over the file's blob and the file's
       updated_at advances, which changes the document key.

Document key: ``file_<id>_<updated_at epoch millis>``. Re-opening unchanged
content yields the same key, so concurrent editors join one session.

The callback handler never raises; it always answers ``{"error": 0|1}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.db.models import File, SharePermission, User
from docspace.documents.conversion import fetch_remote_bytes
from docspace.documents.formats import document_type, extension_of, is_office_file
from docspace.documents.links import DocumentLinks
from docspace.documents.tokens import TokenSigner
from docspace.engine.config import DocSpaceConfig
from docspace.engine.errors import (
    BlobNotFoundError,
    BlobStoreError,
    ForbiddenError,
    NotFoundError,
    RemoteFetchError,
    ValidationError,
)
from docspace.engine.logging import log_document_event
from docspace.security.permissions import PermissionResolver
from docspace.storage.blob import BlobStore
from docspace.storage.tree import sha256_hex

logger = logging.getLogger("docspace.documents.session")


class CallbackStatus(IntEnum):
    EDITING = 1
    MUST_SAVE = 2
    CORRUPTED = 3
    CLOSED_NO_CHANGES = 4
    FORCE_SAVE = 6
    FORCE_SAVE_ERROR = 7


class CallbackAction(str, Enum):
    SAVE = "overwrite-and-bump-identity"
    ACKNOWLEDGE = "acknowledge"


_STATUS_ACTIONS = {
    CallbackStatus.MUST_SAVE: CallbackAction.SAVE,
    CallbackStatus.FORCE_SAVE: CallbackAction.SAVE,
}


def action_for(status: CallbackStatus) -> CallbackAction:
    return _STATUS_ACTIONS.get(status, CallbackAction.ACKNOWLEDGE)


OK = {"error": 0}
RETRY = {"error": 1}

VIEW_MODE = "view"
EDIT_MODE = "edit"


@dataclass
class EditorSession:
    """Signed editor config plus what the client needs to embed it."""

    config: Dict[str, Any]
    document_server_url: str
    can_edit: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config,
            "documentServerUrl": self.document_server_url,
            "canEdit": self.can_edit,
        }


class DocumentSessionManager:
    def __init__(
        self,
        session: AsyncSession,
        blobs: BlobStore,
        config: DocSpaceConfig,
        editor_signer: TokenSigner,
        links: DocumentLinks,
        http_client: httpx.AsyncClient,
        resolver: Optional[PermissionResolver] = None,
    ):
        self._session = session
        self._blobs = blobs
        self._config = config
        self._editor_signer = editor_signer
        self._links = links
        self._http = http_client
        self._resolver = resolver or PermissionResolver(session)

    @property
    def _oo(self):
        return self._config.onlyoffice

    # -------------------------------------------------------------------
    # Support check / descriptor
    # -------------------------------------------------------------------

    async def check_support(self, actor: User, file_id: int) -> Dict[str, Any]:
        file = await self._resolver.require_file(file_id, actor.id, SharePermission.VIEW, "document.check")
        supported = is_office_file(file.name)
        return {
            "supported": supported,
            "file_name": file.name,
            "document_type": document_type(file.name) if supported else None,
            "document_server_url": self._oo.document_server_url,
        }

    async def open_session(self, actor: User, file_id: int, mode: Optional[str] = None) -> EditorSession:
        if mode not in (None, VIEW_MODE, EDIT_MODE):
            raise ValidationError(f"mode must be 'view' or 'edit', got {mode!r}", field="mode")

        needed = SharePermission.EDIT if mode == EDIT_MODE else SharePermission.VIEW
        file = await self._resolver.require_file(file_id, actor.id, needed, f"document.open.{mode or 'auto'}")
        if not is_office_file(file.name):
            raise ValidationError(f"{file.name!r} cannot be opened in the editor", field="file")

        effective = await self._resolver.resolve_file_permission(file.id, actor.id)
        has_edit = effective is SharePermission.EDIT
        editing = has_edit and mode != VIEW_MODE

        config = self.build_editor_config(file, actor, editing)
        log_document_event("session_open", file.id, mode=config["editorConfig"]["mode"], key=file.document_key)
        return EditorSession(config=config, document_server_url=self._oo.document_server_url, can_edit=has_edit)

    def build_editor_config(self, file: File, actor: User, editing: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "document": {
                "fileType": extension_of(file.name) or "docx",
                "key": file.document_key,
                "title": file.name,
                "url": self._links.download_url(file.id),
                "permissions": {
                    "edit": editing,
                    "review": editing,
                    "fillForms": editing,
                    "modifyFilter": editing,
                    "modifyContentControl": editing,
                    "download": True,
                    "print": True,
                    "comment": True,
                    "copy": True,
                },
            },
            "editorConfig": {
                "callbackUrl": self._links.callback_url(file.id),
                "lang": self._oo.lang,
                "mode": EDIT_MODE if editing else VIEW_MODE,
                "user": {"id": str(actor.id), "name": actor.display_name or actor.username},
                "customization": {
                    "autosave": True,
                    "forcesave": True,
                    "chat": True,
                    "comments": True,
                },
            },
        }
        token = self._editor_signer.sign(payload)
        return {
            **payload,
            "documentType": document_type(file.name),
            "type": "desktop",
            "width": "100%",
            "height": "100%",
            "token": token,
        }

    # -------------------------------------------------------------------
    # Capability download
    # -------------------------------------------------------------------

    async def capability_download(
        self, file_id: int, token: Optional[str], api_signer: TokenSigner
    ) -> Tuple[File, bytes]:
        """Bytes for the document server; the token is the only credential."""
        if not api_signer.verify_download_token(token, file_id):
            raise ForbiddenError(f"Invalid download token for file {file_id}", object_ref=f"file:{file_id}")
        file = await self._session.get(File, file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found", object_ref=f"file:{file_id}")
        try:
            data = await self._blobs.get(file.storage_key)
        except BlobNotFoundError as e:
            raise NotFoundError(f"Content of file {file_id} is missing", object_ref=f"file:{file_id}") from e
        return file, data

    # -------------------------------------------------------------------
    # Save-back callback
    # -------------------------------------------------------------------

    def _callback_authorized(self, body: Dict[str, Any], authorization: Optional[str]) -> bool:
        token = body.get("token")
        if not token and authorization and authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()
        return self._editor_signer.verify(token) is not None

    async def handle_callback(
        self,
        file_id: int,
        body: Dict[str, Any],
        authorization: Optional[str] = None,
    ) -> Dict[str, int]:
        try:
            status = CallbackStatus(int(body.get("status")))
        except (TypeError, ValueError):
            logger.warning(f"Callback for file {file_id} with unknown status {body.get('status')!r}")
            return dict(OK)

        if self._oo.verify_callback_token and not self._callback_authorized(body, authorization):
            logger.warning(f"Callback for file {file_id} rejected: missing or invalid token")
            return dict(RETRY)

        action = action_for(status)
        logger.info(
            f"Callback for file {file_id}: status={status.name} action={action.value} "
            f"users={body.get('users')}"
        )
        if action is CallbackAction.ACKNOWLEDGE:
            return dict(OK)

        url = body.get("url")
        if not url:
            logger.error(f"Save callback for file {file_id} has no download url")
            return dict(RETRY)

        if await self._session.get(File, file_id) is None:
            logger.warning(f"Save callback for unknown file {file_id}; nothing to do")
            return dict(OK)

        try:
            data = await fetch_remote_bytes(self._http, url, self._oo.request_timeout)
        except RemoteFetchError as e:
            logger.error(f"Could not fetch edited bytes for file {file_id}: {e}")
            return dict(RETRY)

        # the file may have been deleted while the download was in flight
        result = await self._session.execute(
            select(File).where(File.id == file_id).execution_options(populate_existing=True)
        )
        file = result.scalar_one_or_none()
        if file is None:
            logger.warning(f"File {file_id} deleted during save-back; discarding edited bytes")
            return dict(OK)

        checksum = sha256_hex(data)
        if checksum == file.checksum:
            logger.info(f"Save callback for file {file_id} carries unchanged content; skipping write")
            return dict(OK)

        try:
            await self._blobs.put(file.storage_key, data, file.content_type)
        except BlobStoreError as e:
            logger.error(f"Blob write failed during save-back of file {file_id}: {e}")
            return dict(RETRY)

        previous_key = file.document_key
        file.record_content(len(data), checksum)
        await self._session.flush()
        log_document_event(
            "save_back",
            file_id,
            status=int(status),
            byte_size=len(data),
            previous_key=previous_key,
            key=file.document_key,
        )
        return dict(OK)
