"""
DocSpace Sharing Ledger — Share grants on folders and files.

One grant per (subject, grantee). Sharing again with the same user replaces
the permission (upsert). Only the owner of a folder or file may share it,
list its grants or revoke them. Owners never appear as grantees of their
own items.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Type, Union

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.db.models import File, FileShare, Folder, FolderShare, SharePermission, User
from docspace.engine.errors import NotFoundError, ValidationError
from docspace.security.permissions import PermissionResolver

logger = logging.getLogger("docspace.security.sharing")

ShareModel = Union[Type[FolderShare], Type[FileShare]]


def parse_permission(value: Union[str, SharePermission, None]) -> SharePermission:
    if isinstance(value, SharePermission):
        return value
    try:
        return SharePermission(str(value or "").upper())
    except ValueError:
        raise ValidationError(
            f"Permission must be VIEW or EDIT, got {value!r}", field="permission"
        ) from None


@dataclass
class ShareGrant:
    """A grant as shown to the owner."""

    user_id: int
    username: str
    display_name: str
    permission: SharePermission

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "display_name": self.display_name,
            "permission": self.permission.value,
        }


@dataclass
class SharedItem:
    """A folder or file shared with the current user."""

    item: Union[Folder, File]
    permission: SharePermission
    owner_name: str


class SharingLedger:
    def __init__(self, session: AsyncSession, resolver: Optional[PermissionResolver] = None):
        self._session = session
        self._resolver = resolver or PermissionResolver(session)

    # -------------------------------------------------------------------
    # Generic grant handling
    # -------------------------------------------------------------------

    async def _upsert(
        self,
        model: ShareModel,
        subject_column: str,
        subject_id: int,
        owner_id: int,
        user_ids: Iterable[int],
        permission: SharePermission,
    ) -> int:
        grantees = sorted({int(u) for u in user_ids if int(u) != owner_id})
        if not grantees:
            return 0

        found = await self._session.execute(select(User.id).where(User.id.in_(grantees)))
        missing = set(grantees) - set(found.scalars().all())
        if missing:
            raise NotFoundError(f"Unknown user(s): {sorted(missing)}", field="user_ids")

        existing_rows = await self._session.execute(
            select(model).where(
                getattr(model, subject_column) == subject_id,
                model.user_id.in_(grantees),
            )
        )
        existing = {row.user_id: row for row in existing_rows.scalars().all()}

        for user_id in grantees:
            row = existing.get(user_id)
            if row is not None:
                row.permission = permission.value
            else:
                self._session.add(
                    model(**{subject_column: subject_id, "user_id": user_id, "permission": permission.value})
                )
        await self._session.flush()
        return len(grantees)

    async def _grants(self, model: ShareModel, subject_column: str, subject_id: int) -> List[ShareGrant]:
        rows = await self._session.execute(
            select(model, User)
            .join(User, User.id == model.user_id)
            .where(getattr(model, subject_column) == subject_id)
            .order_by(User.username)
        )
        return [
            ShareGrant(
                user_id=user.id,
                username=user.username,
                display_name=user.display_name,
                permission=SharePermission(share.permission),
            )
            for share, user in rows.all()
        ]

    async def _revoke(self, model: ShareModel, subject_column: str, subject_id: int, user_id: int) -> int:
        result = await self._session.execute(
            delete(model).where(
                getattr(model, subject_column) == subject_id,
                model.user_id == user_id,
            )
        )
        return result.rowcount or 0

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    async def share_folder(
        self, actor_id: int, folder_id: int, user_ids: Iterable[int], permission: Any
    ) -> int:
        perm = parse_permission(permission)
        folder = await self._resolver.require_folder_owner(folder_id, actor_id, "folder.share")
        count = await self._upsert(FolderShare, "folder_id", folder.id, folder.owner_id, user_ids, perm)
        logger.info(f"Folder {folder_id} shared with {count} user(s) as {perm.value}")
        return count

    async def list_folder_shares(self, actor_id: int, folder_id: int) -> List[ShareGrant]:
        await self._resolver.require_folder_owner(folder_id, actor_id, "folder.shares")
        return await self._grants(FolderShare, "folder_id", folder_id)

    async def unshare_folder(self, actor_id: int, folder_id: int, user_id: int) -> int:
        await self._resolver.require_folder_owner(folder_id, actor_id, "folder.unshare")
        removed = await self._revoke(FolderShare, "folder_id", folder_id, user_id)
        logger.info(f"Folder {folder_id} unshared from user {user_id} ({removed} grant(s))")
        return removed

    # -------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------

    async def share_file(
        self, actor_id: int, file_id: int, user_ids: Iterable[int], permission: Any
    ) -> int:
        perm = parse_permission(permission)
        file = await self._resolver.require_file_owner(file_id, actor_id, "file.share")
        count = await self._upsert(FileShare, "file_id", file.id, file.owner_id, user_ids, perm)
        logger.info(f"File {file_id} shared with {count} user(s) as {perm.value}")
        return count

    async def list_file_shares(self, actor_id: int, file_id: int) -> List[ShareGrant]:
        await self._resolver.require_file_owner(file_id, actor_id, "file.shares")
        return await self._grants(FileShare, "file_id", file_id)

    async def unshare_file(self, actor_id: int, file_id: int, user_id: int) -> int:
        await self._resolver.require_file_owner(file_id, actor_id, "file.unshare")
        removed = await self._revoke(FileShare, "file_id", file_id, user_id)
        logger.info(f"File {file_id} unshared from user {user_id} ({removed} grant(s))")
        return removed

    # -------------------------------------------------------------------
    # Shared with me
    # -------------------------------------------------------------------

    async def shared_with_me(self, user_id: int) -> Dict[str, List[SharedItem]]:
        """Items directly shared with ``user_id`` (not their descendants)."""
        folder_rows = await self._session.execute(
            select(Folder, FolderShare.permission, User.display_name, User.username)
            .join(FolderShare, FolderShare.folder_id == Folder.id)
            .join(User, User.id == Folder.owner_id)
            .where(FolderShare.user_id == user_id)
            .order_by(Folder.name)
        )
        file_rows = await self._session.execute(
            select(File, FileShare.permission, User.display_name, User.username)
            .join(FileShare, FileShare.file_id == File.id)
            .join(User, User.id == File.owner_id)
            .where(FileShare.user_id == user_id)
            .order_by(File.name)
        )
        return {
            "folders": [
                SharedItem(folder, SharePermission(perm), display or username)
                for folder, perm, display, username in folder_rows.all()
            ],
            "files": [
                SharedItem(file, SharePermission(perm), display or username)
                for file, perm, display, username in file_rows.all()
            ],
        }

    # -------------------------------------------------------------------
    # Grantee lookup
    # -------------------------------------------------------------------

    async def search_users(self, user_id: int, query: str, limit: int = 10) -> List[User]:
        """Users other than ``user_id`` whose username or display name contains ``query``."""
        needle = (query or "").strip()
        if not needle:
            return []
        rows = await self._session.execute(
            select(User)
            .where(
                User.id != user_id,
                or_(
                    User.username.icontains(needle, autoescape=True),
                    User.display_name.icontains(needle, autoescape=True),
                ),
            )
            .order_by(User.username)
            .limit(limit)
        )
        return list(rows.scalars().all())
