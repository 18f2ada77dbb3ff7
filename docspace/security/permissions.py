"""
DocSpace Permissions — Effective access to folders and files.

Resolution for a folder (walks parent pointers, root-ward):
    1. The user owns the folder           → EDIT
    2. A direct share for the user exists → that share's permission
    3. Otherwise continue with parent_id
    4. Root reached or folder missing     → None

Resolution for a file:
    1. The user owns the file             → EDIT
    2. A direct file share exists         → that share's permission
    3. Otherwise the parent folder's effective permission
    4. Root file without a share          → None

The walk is an explicit loop with a visited set. A folder id seen twice
means the parent chain is corrupt; the walk logs it and resolves to None.

Listing policy: at root a user only sees what they own; inside any folder
they can reach, every child is listed regardless of its owner.
"""

from __future__ import annotations

import logging
from typing import Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.db.models import File, FileShare, Folder, FolderShare, SharePermission
from docspace.engine.errors import ForbiddenError, NotFoundError
from docspace.engine.logging import log_security_event

logger = logging.getLogger("docspace.security.permissions")


class PermissionResolver:
    """Resolves effective VIEW/EDIT access for one database session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _folder_share(self, folder_id: int, user_id: int) -> Optional[SharePermission]:
        result = await self._session.execute(
            select(FolderShare.permission).where(
                FolderShare.folder_id == folder_id,
                FolderShare.user_id == user_id,
            )
        )
        value = result.scalar_one_or_none()
        return SharePermission(value) if value else None

    async def _file_share(self, file_id: int, user_id: int) -> Optional[SharePermission]:
        result = await self._session.execute(
            select(FileShare.permission).where(
                FileShare.file_id == file_id,
                FileShare.user_id == user_id,
            )
        )
        value = result.scalar_one_or_none()
        return SharePermission(value) if value else None

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------

    async def resolve_folder_permission(
        self, folder_id: Optional[int], user_id: int
    ) -> Optional[SharePermission]:
        visited: Set[int] = set()
        current_id = folder_id

        while current_id is not None:
            if current_id in visited:
                logger.error(
                    f"Cycle in folder parent chain at folder {current_id} "
                    f"(started from {folder_id}); treating as no access"
                )
                return None
            visited.add(current_id)

            folder = await self._session.get(Folder, current_id)
            if folder is None:
                return None
            if folder.owner_id == user_id:
                return SharePermission.EDIT

            shared = await self._folder_share(current_id, user_id)
            if shared is not None:
                return shared

            current_id = folder.parent_id

        return None

    async def resolve_file_permission(
        self, file_id: int, user_id: int
    ) -> Optional[SharePermission]:
        file = await self._session.get(File, file_id)
        if file is None:
            return None
        return await self._resolve_loaded_file(file, user_id)

    async def _resolve_loaded_file(self, file: File, user_id: int) -> Optional[SharePermission]:
        if file.owner_id == user_id:
            return SharePermission.EDIT
        shared = await self._file_share(file.id, user_id)
        if shared is not None:
            return shared
        if file.folder_id is None:
            return None
        return await self.resolve_folder_permission(file.folder_id, user_id)

    # -------------------------------------------------------------------
    # Enforcement helpers
    # -------------------------------------------------------------------

    async def require_folder(
        self,
        folder_id: int,
        user_id: int,
        needed: SharePermission = SharePermission.VIEW,
        action: str = "folder.access",
    ) -> Folder:
        """Load a folder the user may access at ``needed`` level."""
        folder = await self._session.get(Folder, folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found", object_ref=f"folder:{folder_id}")

        effective = await self.resolve_folder_permission(folder_id, user_id)
        self._enforce(action, f"folder:{folder_id}", user_id, needed, effective)
        return folder

    async def require_file(
        self,
        file_id: int,
        user_id: int,
        needed: SharePermission = SharePermission.VIEW,
        action: str = "file.access",
    ) -> File:
        """Load a file the user may access at ``needed`` level."""
        file = await self._session.get(File, file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found", object_ref=f"file:{file_id}")

        effective = await self._resolve_loaded_file(file, user_id)
        self._enforce(action, f"file:{file_id}", user_id, needed, effective)
        return file

    async def require_destination(
        self, folder_id: Optional[int], user_id: int, action: str = "folder.write"
    ) -> Optional[Folder]:
        """
        EDIT check for a write target. ``None`` is the user's own root,
        which they can always write to.
        """
        if folder_id is None:
            return None
        return await self.require_folder(folder_id, user_id, SharePermission.EDIT, action)

    async def require_folder_owner(
        self, folder_id: int, user_id: int, action: str = "folder.manage"
    ) -> Folder:
        folder = await self._session.get(Folder, folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found", object_ref=f"folder:{folder_id}")
        self._enforce_owner(action, f"folder:{folder_id}", user_id, folder.owner_id)
        return folder

    async def require_file_owner(
        self, file_id: int, user_id: int, action: str = "file.manage"
    ) -> File:
        file = await self._session.get(File, file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found", object_ref=f"file:{file_id}")
        self._enforce_owner(action, f"file:{file_id}", user_id, file.owner_id)
        return file

    @staticmethod
    def _enforce(
        action: str,
        subject: str,
        user_id: int,
        needed: SharePermission,
        effective: Optional[SharePermission],
    ) -> None:
        allowed = effective is not None and effective.allows(needed)
        log_security_event(
            action,
            subject,
            allowed=allowed,
            required_permission=needed.value,
            effective_permission=effective.value if effective else None,
            user_id=user_id,
        )
        if not allowed:
            raise ForbiddenError(
                f"User {user_id} lacks {needed.value} on {subject}",
                user_id=user_id,
                required_permission=needed.value,
                object_ref=subject,
            )

    @staticmethod
    def _enforce_owner(action: str, subject: str, user_id: int, owner_id: int) -> None:
        allowed = owner_id == user_id
        log_security_event(
            action, subject, allowed=allowed, required_permission="OWNER", user_id=user_id
        )
        if not allowed:
            raise ForbiddenError(
                f"Only the owner may perform {action} on {subject}",
                user_id=user_id,
                required_permission="OWNER",
                object_ref=subject,
            )
