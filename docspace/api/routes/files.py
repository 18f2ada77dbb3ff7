"""
File routes — /folders/files/...

Rename, move, delete, download (attachment), stream (inline, Range-aware),
URL issuance, sharing, save-as, and the capability-scoped download used by
the document server.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.api.deps import (
    get_current_user,
    get_documents,
    get_runtime,
    get_session,
    get_sharing,
    get_tree,
)
from docspace.api.schemas import (
    FileOut,
    FileUrlOut,
    MessageOut,
    MoveRequest,
    RenameRequest,
    SaveAsRequest,
    ShareGrantOut,
    ShareRequest,
)
from docspace.db.models import User
from docspace.documents.session import DocumentSessionManager
from docspace.engine.runtime import Runtime
from docspace.security.sharing import SharingLedger
from docspace.storage.tree import StorageTree

logger = logging.getLogger("docspace.api.files")

router = APIRouter(prefix="/folders/files", tags=["files"])


def content_disposition(kind: str, filename: str) -> str:
    return f"{kind}; filename*=UTF-8''{quote(filename, safe='')}"


@router.post("/save-as", response_model=FileOut)
async def save_as(
    body: SaveAsRequest,
    response: Response,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    result = await tree.save_from_url(
        user,
        body.name,
        folder_id=body.folder_id,
        url=body.url,
        source_file_id=body.source_file_id,
        source_file_type=body.source_file_type,
    )
    await session.commit()
    response.status_code = 201 if result.created else 200
    return result.file


@router.put("/{file_id}/rename", response_model=FileOut)
async def rename_file(
    file_id: int,
    body: RenameRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    file = await tree.rename_file(user, file_id, body.name)
    await session.commit()
    return file


@router.put("/{file_id}/move", response_model=FileOut)
async def move_file(
    file_id: int,
    body: MoveRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    file = await tree.move_file(user, file_id, body.target_folder_id)
    await session.commit()
    return file


@router.delete("/{file_id}", response_model=MessageOut)
async def delete_file(
    file_id: int,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    await tree.delete_file(user, file_id)
    await session.commit()
    return MessageOut(message="File deleted")


@router.get("/{file_id}/url", response_model=FileUrlOut)
async def file_url(
    file_id: int,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
):
    return FileUrlOut(url=await tree.file_url(user, file_id))


@router.get("/{file_id}/download")
async def download_file(
    file_id: int,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
):
    content = await tree.read_file(user, file_id)
    return Response(
        content=content.data,
        media_type=content.file.content_type,
        headers={"Content-Disposition": content_disposition("attachment", content.file.name)},
    )


@router.get("/{file_id}/stream")
async def stream_file(
    file_id: int,
    range_header: Optional[str] = Header(None, alias="Range"),
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
):
    content = await tree.read_file_range(user, file_id, range_header)
    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": content_disposition("inline", content.file.name),
    }
    if content.byte_range is None:
        return Response(content=content.data, media_type=content.file.content_type, headers=headers)
    headers["Content-Range"] = content.byte_range.content_range()
    return Response(
        content=content.data,
        status_code=206,
        media_type=content.file.content_type,
        headers=headers,
    )


@router.get("/{file_id}/onlyoffice-download")
async def onlyoffice_download(
    file_id: int,
    token: Optional[str] = Query(None),
    runtime: Runtime = Depends(get_runtime),
    documents: DocumentSessionManager = Depends(get_documents),
):
    file, data = await documents.capability_download(file_id, token, runtime.api_signer)
    return Response(
        content=data,
        media_type=file.content_type,
        headers={"Content-Disposition": content_disposition("attachment", file.name)},
    )


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------

@router.post("/{file_id}/share", response_model=MessageOut)
async def share_file(
    file_id: int,
    body: ShareRequest,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
    session: AsyncSession = Depends(get_session),
):
    count = await sharing.share_file(user.id, file_id, body.user_ids, body.permission)
    await session.commit()
    return MessageOut(message=f"File shared with {count} user(s)")


@router.get("/{file_id}/shares", response_model=List[ShareGrantOut])
async def list_file_shares(
    file_id: int,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
):
    grants = await sharing.list_file_shares(user.id, file_id)
    return [ShareGrantOut(**g.to_dict()) for g in grants]


@router.delete("/{file_id}/share/{target_user_id}", response_model=MessageOut)
async def unshare_file(
    file_id: int,
    target_user_id: int,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
    session: AsyncSession = Depends(get_session),
):
    await sharing.unshare_file(user.id, file_id, target_user_id)
    await session.commit()
    return MessageOut(message="File unshared")
