"""
Folder routes — /folders/...

Listing, creation, upload, structure creation, search, shared-with-me,
rename / move / delete, folder sharing and grantee lookup.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File as FormFile, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.api.deps import get_current_user, get_session, get_sharing, get_tree
from docspace.api.schemas import (
    BreadcrumbOut,
    CreateFolderRequest,
    EnsureStructureRequest,
    FileOut,
    FolderListingOut,
    FolderOut,
    MessageOut,
    MoveRequest,
    PathMapOut,
    RenameRequest,
    SearchFileOut,
    SearchFolderOut,
    SearchResultsOut,
    ShareGrantOut,
    ShareRequest,
    SharedFileOut,
    SharedFolderOut,
    SharedWithMeOut,
    UserOut,
)
from docspace.db.models import User
from docspace.engine.errors import ValidationError
from docspace.security.sharing import SharingLedger
from docspace.storage.tree import StorageTree

logger = logging.getLogger("docspace.api.folders")

router = APIRouter(prefix="/folders", tags=["folders"])


@router.get("", response_model=FolderListingOut)
async def list_folder(
    parent_id: Optional[int] = Query(None, alias="parentId"),
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
):
    listing = await tree.list_children(user, parent_id)
    return FolderListingOut(
        folders=[FolderOut.model_validate(f) for f in listing.folders],
        files=[FileOut.model_validate(f) for f in listing.files],
        current_folder=FolderOut.model_validate(listing.current_folder) if listing.current_folder else None,
        breadcrumbs=[BreadcrumbOut(id=f.id, name=f.name) for f in listing.breadcrumbs],
        parent_id=listing.parent_id,
    )


@router.post("", response_model=FolderOut, status_code=201)
async def create_folder(
    body: CreateFolderRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    folder = await tree.create_folder(user, body.name, body.parent_id)
    await session.commit()
    return folder


@router.post("/upload", response_model=FileOut)
async def upload_file(
    response: Response,
    file: Optional[UploadFile] = FormFile(None),
    folder_id: Optional[int] = Form(None, alias="folderId"),
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    if file is None or not file.filename:
        raise ValidationError("No file was uploaded", field="file")
    data = await file.read()
    result = await tree.create_or_overwrite_file(
        user, file.filename, data, folder_id, file.content_type or None
    )
    await session.commit()
    response.status_code = 201 if result.created else 200
    return result.file


@router.post("/ensure-structure", response_model=PathMapOut)
async def ensure_structure(
    body: EnsureStructureRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    path_map = await tree.ensure_structure(user, body.paths, body.parent_id)
    await session.commit()
    return PathMapOut(path_map=path_map)


@router.get("/search", response_model=SearchResultsOut)
async def search(
    q: str = Query(""),
    parent_id: Optional[int] = Query(None, alias="parentId"),
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
):
    results = await tree.search(user, q, parent_id)
    folders = [
        SearchFolderOut(
            **FolderOut.model_validate(hit.item).model_dump(),
            path=hit.path,
            is_shared=hit.is_shared,
            owner_name=hit.owner_name,
        )
        for hit in results.folders
    ]
    files = [
        SearchFileOut(
            **FileOut.model_validate(hit.item).model_dump(),
            path=hit.path,
            is_shared=hit.is_shared,
            owner_name=hit.owner_name,
        )
        for hit in results.files
    ]
    return SearchResultsOut(
        folders=folders, files=files, total_folders=len(folders), total_files=len(files)
    )


@router.get("/shared", response_model=SharedWithMeOut)
async def shared_with_me(
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
):
    shared = await sharing.shared_with_me(user.id)
    return SharedWithMeOut(
        folders=[
            SharedFolderOut(
                **FolderOut.model_validate(s.item).model_dump(),
                permission=s.permission.value,
                owner_name=s.owner_name,
            )
            for s in shared["folders"]
        ],
        files=[
            SharedFileOut(
                **FileOut.model_validate(s.item).model_dump(),
                permission=s.permission.value,
                owner_name=s.owner_name,
            )
            for s in shared["files"]
        ],
    )


@router.get("/users/search", response_model=List[UserOut])
async def search_users(
    q: str = Query(""),
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
):
    users = await sharing.search_users(user.id, q)
    return [UserOut.model_validate(u) for u in users]


@router.put("/{folder_id}/rename", response_model=FolderOut)
async def rename_folder(
    folder_id: int,
    body: RenameRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    folder = await tree.rename_folder(user, folder_id, body.name)
    await session.commit()
    return folder


@router.put("/{folder_id}/move", response_model=FolderOut)
async def move_folder(
    folder_id: int,
    body: MoveRequest,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    folder = await tree.move_folder(user, folder_id, body.target_folder_id)
    await session.commit()
    return folder


@router.delete("/{folder_id}", response_model=MessageOut)
async def delete_folder(
    folder_id: int,
    user: User = Depends(get_current_user),
    tree: StorageTree = Depends(get_tree),
    session: AsyncSession = Depends(get_session),
):
    summary = await tree.delete_folder(user, folder_id)
    await session.commit()
    return MessageOut(message=f"Folder deleted ({summary['folders']} folder(s))")


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------

@router.post("/{folder_id}/share", response_model=MessageOut)
async def share_folder(
    folder_id: int,
    body: ShareRequest,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
    session: AsyncSession = Depends(get_session),
):
    count = await sharing.share_folder(user.id, folder_id, body.user_ids, body.permission)
    await session.commit()
    return MessageOut(message=f"Folder shared with {count} user(s)")


@router.get("/{folder_id}/shares", response_model=List[ShareGrantOut])
async def list_folder_shares(
    folder_id: int,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
):
    grants = await sharing.list_folder_shares(user.id, folder_id)
    return [ShareGrantOut(**g.to_dict()) for g in grants]


@router.delete("/{folder_id}/share/{target_user_id}", response_model=MessageOut)
async def unshare_folder(
    folder_id: int,
    target_user_id: int,
    user: User = Depends(get_current_user),
    sharing: SharingLedger = Depends(get_sharing),
    session: AsyncSession = Depends(get_session),
):
    await sharing.unshare_folder(user.id, folder_id, target_user_id)
    await session.commit()
    return MessageOut(message="Folder unshared")
