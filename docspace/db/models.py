"""
DocSpace Models — SQLAlchemy tables for the file/folder store.

Tables:
1. users         — Owner identity (username drives the blob root prefix)
2. folders       — Folder tree (parent_id NULL = owner's root)
3. files         — File metadata; bytes live in the blob store at storage_key
4. folder_shares — One grant per (folder, grantee)
5. file_shares   — One grant per (file, grantee)

Ownership is implicit full EDIT access and is never stored as a share row.
Deleting a folder cascades to child folders, files and shares at the
database level (ON DELETE CASCADE).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from docspace.db.base import Base, TimestampMixin, utcnow


class SharePermission(str, Enum):
    """Access level granted by a share (or implied by ownership)."""
    VIEW = "VIEW"
    EDIT = "EDIT"

    def allows(self, required: "SharePermission") -> bool:
        """EDIT satisfies everything; VIEW satisfies only VIEW."""
        return self is SharePermission.EDIT or required is SharePermission.VIEW


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are always stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def epoch_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(200), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


# ---------------------------------------------------------------------------
# 2. Folders
# ---------------------------------------------------------------------------

class Folder(Base, TimestampMixin):
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    storage_key_prefix = Column(String(1024), nullable=False)

    __table_args__ = (
        Index("idx_folders_parent_id", "parent_id"),
        Index("idx_folders_owner_parent_name", "owner_id", "parent_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


# ---------------------------------------------------------------------------
# 3. Files
# ---------------------------------------------------------------------------

class File(Base, TimestampMixin):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    storage_key = Column(String(1024), nullable=False)
    byte_size = Column(BigInteger, nullable=False, default=0)
    content_type = Column(String(255), nullable=False, default="application/octet-stream")
    checksum = Column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_files_folder_id", "folder_id"),
        Index("idx_files_owner_folder_name", "owner_id", "folder_id", "name"),
        Index("idx_files_storage_key", "storage_key"),
    )

    @property
    def extension(self) -> str:
        return self.name.rsplit(".", 1)[-1].lower() if "." in self.name else ""

    @property
    def document_key(self) -> str:
        """Content-identity token: changes exactly when updated_at changes."""
        return f"file_{self.id}_{epoch_millis(self.updated_at)}"

    def record_content(
        self,
        byte_size: int,
        checksum: str,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Apply a content overwrite to the metadata row.

        updated_at always moves forward by at least one millisecond so two
        writes inside the same millisecond still yield distinct document keys.
        """
        now = as_utc(now or utcnow())
        if self.updated_at is not None:
            floor = as_utc(self.updated_at) + timedelta(milliseconds=1)
            if now < floor:
                now = floor
        self.byte_size = byte_size
        self.checksum = checksum
        if content_type:
            self.content_type = content_type
        self.updated_at = now

    def __repr__(self) -> str:
        return f"<File(id={self.id}, name='{self.name}', folder_id={self.folder_id})>"


# ---------------------------------------------------------------------------
# 4. / 5. Shares
# ---------------------------------------------------------------------------

_PERMISSION_CHECK = "permission IN ('VIEW', 'EDIT')"


class FolderShare(Base):
    __tablename__ = "folder_shares"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String(10), nullable=False, default=SharePermission.VIEW.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("folder_id", "user_id", name="uq_folder_share"),
        CheckConstraint(_PERMISSION_CHECK, name="ck_folder_share_permission"),
        Index("idx_folder_shares_user_id", "user_id"),
    )


class FileShare(Base):
    __tablename__ = "file_shares"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String(10), nullable=False, default=SharePermission.VIEW.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("file_id", "user_id", name="uq_file_share"),
        CheckConstraint(_PERMISSION_CHECK, name="ck_file_share_permission"),
        Index("idx_file_shares_user_id", "user_id"),
    )
