"""
DocSpace API Schemas — Request and response bodies.

Python attributes are snake_case; the wire format is camelCase
(``parentId``, ``byteSize``, ``isShared``). Response models read straight
from ORM rows (from_attributes).
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateFolderRequest(CamelModel):
    name: str
    parent_id: Optional[int] = None


class RenameRequest(CamelModel):
    name: str


class MoveRequest(CamelModel):
    target_folder_id: Optional[int] = None


class ShareRequest(CamelModel):
    user_ids: List[int] = Field(min_length=1)
    permission: str = "VIEW"


class EnsureStructureRequest(CamelModel):
    paths: List[str]
    parent_id: Optional[int] = None


class SaveAsRequest(CamelModel):
    name: str
    url: Optional[str] = None
    source_file_id: Optional[int] = None
    folder_id: Optional[int] = None
    source_file_type: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class FolderOut(CamelModel):
    id: int
    name: str
    owner_id: int
    parent_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class FileOut(CamelModel):
    id: int
    name: str
    owner_id: int
    folder_id: Optional[int] = None
    byte_size: int
    content_type: str
    document_key: str
    created_at: datetime
    updated_at: datetime


class BreadcrumbOut(CamelModel):
    id: int
    name: str


class FolderListingOut(CamelModel):
    folders: List[FolderOut]
    files: List[FileOut]
    current_folder: Optional[FolderOut] = None
    breadcrumbs: List[BreadcrumbOut] = []
    parent_id: Optional[int] = None


class SearchFolderOut(FolderOut):
    path: str
    is_shared: bool
    owner_name: Optional[str] = None


class SearchFileOut(FileOut):
    path: str
    is_shared: bool
    owner_name: Optional[str] = None


class SearchResultsOut(CamelModel):
    folders: List[SearchFolderOut]
    files: List[SearchFileOut]
    total_folders: int
    total_files: int


class SharedFolderOut(FolderOut):
    permission: str
    owner_name: str


class SharedFileOut(FileOut):
    permission: str
    owner_name: str


class SharedWithMeOut(CamelModel):
    folders: List[SharedFolderOut]
    files: List[SharedFileOut]


class UserOut(CamelModel):
    id: int
    username: str
    display_name: str


class ShareGrantOut(CamelModel):
    user_id: int
    username: str
    display_name: str
    permission: str


class PathMapOut(CamelModel):
    path_map: Dict[str, int]


class FileUrlOut(CamelModel):
    url: str


class MessageOut(CamelModel):
    message: str


class SupportOut(CamelModel):
    supported: bool
    file_name: str
    document_type: Optional[str] = None
    document_server_url: str


class HealthOut(CamelModel):
    status: str
    database: bool
    storage: bool
    storage_backend: str
