"""
DocSpace Storage Tree — Folder and file records on top of the blob store.

Handles:
- Folder create / rename / move / delete (with blob cleanup)
- Listing children with breadcrumbs
- Upload as create-or-overwrite by name
- Save-as from a URL or an existing file, converting when the extension changes
- Ensuring a folder structure from "/"-separated paths
- Case-insensitive search across owned and shared items
- Reading file bytes (whole, ranged, or via presigned URL)

Every mutation runs inside the caller's AsyncSession; the caller commits.

Name uniqueness is per owner: two users may each have a "Docs" folder under
the same shared parent, but one user cannot have two.

Blob keys are assigned once at creation. A key already used by another row
gets the owner id appended so that no two rows ever share a blob.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlparse

import httpx
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.db.base import utcnow
from docspace.db.models import File, FileShare, Folder, FolderShare, SharePermission, User
from docspace.documents.conversion import ConversionGatewayClient, fetch_remote_bytes
from docspace.documents.formats import content_type_for, extension_of
from docspace.documents.links import DocumentLinks
from docspace.engine.attempt import attempt
from docspace.engine.config import DocSpaceConfig
from docspace.engine.errors import (
    BlobNotFoundError,
    CyclicMoveError,
    InvalidMoveError,
    NameConflictError,
    NotFoundError,
    ValidationError,
)
from docspace.engine.logging import log_document_event
from docspace.security.permissions import PermissionResolver
from docspace.storage.blob import FOLDER_MARKER, FOLDER_MARKER_CONTENT_TYPE, BlobStore
from docspace.storage.paths import join_key, owner_root_prefix, sanitize_filename, validate_name
from docspace.storage.ranges import ByteRange, parse_range

logger = logging.getLogger("docspace.storage.tree")

ROOT_LABEL = "Root"
SEARCH_LIMIT = 50
MIN_QUERY_LENGTH = 2


@dataclass
class FolderListing:
    folders: List[Folder]
    files: List[File]
    current_folder: Optional[Folder] = None
    breadcrumbs: List[Folder] = field(default_factory=list)
    parent_id: Optional[int] = None


@dataclass
class UploadResult:
    file: File
    created: bool


@dataclass
class SearchHit:
    item: object
    path: str
    is_shared: bool
    owner_name: Optional[str] = None


@dataclass
class SearchResults:
    folders: List[SearchHit] = field(default_factory=list)
    files: List[SearchHit] = field(default_factory=list)


@dataclass
class FileContent:
    file: File
    data: bytes
    byte_range: Optional[ByteRange] = None
    total_size: int = 0


def _parent_is(column, value: Optional[int]):
    return column.is_(None) if value is None else column == value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class StorageTree:
    """Folder/file operations for one request's database session."""

    def __init__(
        self,
        session: AsyncSession,
        blobs: BlobStore,
        config: DocSpaceConfig,
        resolver: Optional[PermissionResolver] = None,
        links: Optional[DocumentLinks] = None,
        conversion: Optional[ConversionGatewayClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._session = session
        self._blobs = blobs
        self._config = config
        self._resolver = resolver or PermissionResolver(session)
        self._links = links
        self._conversion = conversion
        self._http = http_client

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    def _root_prefix(self, user: User) -> str:
        return owner_root_prefix(user.username, self._config.storage.user_prefix)

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------

    async def _sibling_folder(
        self, owner_id: int, parent_id: Optional[int], name: str, exclude_id: Optional[int] = None
    ) -> Optional[Folder]:
        stmt = select(Folder).where(
            Folder.owner_id == owner_id,
            _parent_is(Folder.parent_id, parent_id),
            Folder.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(Folder.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()

    async def _sibling_file(
        self, owner_id: int, folder_id: Optional[int], name: str, exclude_id: Optional[int] = None
    ) -> Optional[File]:
        stmt = select(File).where(
            File.owner_id == owner_id,
            _parent_is(File.folder_id, folder_id),
            File.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(File.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()

    async def _key_taken(self, candidate: str) -> bool:
        """Folder prefixes and file keys share one namespace in the blob store."""
        if candidate.rpartition("/")[2] == FOLDER_MARKER:
            return True
        folder = await self._session.execute(
            select(Folder.id).where(Folder.storage_key_prefix == candidate).limit(1)
        )
        if folder.first() is not None:
            return True
        file = await self._session.execute(
            select(File.id).where(File.storage_key == candidate).limit(1)
        )
        return file.first() is not None

    async def _unique_folder_prefix(self, prefix: str, owner_id: int) -> str:
        candidate = prefix
        n = 0
        while await self._key_taken(candidate):
            n += 1
            candidate = f"{prefix}__u{owner_id}" if n == 1 else f"{prefix}__u{owner_id}_{n}"
        return candidate

    async def _unique_file_key(self, key: str, owner_id: int) -> str:
        head, dot, ext = key.rpartition(".")
        if not dot or "/" in ext or head.endswith("/"):
            head, dot, ext = key, "", ""
        candidate = key
        n = 0
        while await self._key_taken(candidate):
            n += 1
            suffix = f"__u{owner_id}" if n == 1 else f"__u{owner_id}_{n}"
            candidate = f"{head}{suffix}{dot}{ext}"
        if n:
            logger.info(f"Storage key {key!r} in use; assigned {candidate!r}")
        return candidate

    async def descendant_folder_ids(self, root_ids: Iterable[int]) -> List[int]:
        """Ids of ``root_ids`` and every folder below them (breadth first)."""
        seen: Set[int] = set()
        ordered: List[int] = []
        frontier = [i for i in root_ids if i is not None]
        for folder_id in frontier:
            if folder_id not in seen:
                seen.add(folder_id)
                ordered.append(folder_id)

        while frontier:
            result = await self._session.execute(
                select(Folder.id).where(Folder.parent_id.in_(frontier))
            )
            frontier = [i for i in result.scalars().all() if i not in seen]
            seen.update(frontier)
            ordered.extend(frontier)
        return ordered

    async def breadcrumbs(self, folder_id: Optional[int]) -> List[Folder]:
        """Ancestors of a folder, root first, ending with the folder itself."""
        chain: List[Folder] = []
        visited: Set[int] = set()
        current_id = folder_id
        while current_id is not None and current_id not in visited:
            visited.add(current_id)
            folder = await self._session.get(Folder, current_id)
            if folder is None:
                break
            chain.append(folder)
            current_id = folder.parent_id
        chain.reverse()
        return chain

    async def _path_label(self, folder_id: Optional[int]) -> str:
        if folder_id is None:
            return ROOT_LABEL
        names = [f.name for f in await self.breadcrumbs(folder_id)]
        return " / ".join(names) or ROOT_LABEL

    # -------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------

    async def list_children(self, actor: User, parent_id: Optional[int] = None) -> FolderListing:
        if parent_id is None:
            folders = await self._session.execute(
                select(Folder)
                .where(Folder.owner_id == actor.id, Folder.parent_id.is_(None))
                .order_by(Folder.name)
            )
            files = await self._session.execute(
                select(File)
                .where(File.owner_id == actor.id, File.folder_id.is_(None))
                .order_by(File.name)
            )
            return FolderListing(
                folders=list(folders.scalars().all()),
                files=list(files.scalars().all()),
            )

        current = await self._resolver.require_folder(
            parent_id, actor.id, SharePermission.VIEW, "folder.list"
        )
        folders = await self._session.execute(
            select(Folder).where(Folder.parent_id == parent_id).order_by(Folder.name)
        )
        files = await self._session.execute(
            select(File).where(File.folder_id == parent_id).order_by(File.name)
        )
        return FolderListing(
            folders=list(folders.scalars().all()),
            files=list(files.scalars().all()),
            current_folder=current,
            breadcrumbs=await self.breadcrumbs(parent_id),
            parent_id=parent_id,
        )

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    async def create_folder(self, actor: User, name: str, parent_id: Optional[int] = None) -> Folder:
        name = validate_name(name)
        parent = await self._resolver.require_destination(parent_id, actor.id, "folder.create")

        if await self._sibling_folder(actor.id, parent_id, name) is not None:
            raise NameConflictError(
                f"A folder named {name!r} already exists here", field="name", object_ref=f"folder:{parent_id}"
            )

        if parent is not None and parent.owner_id == actor.id:
            base = parent.storage_key_prefix
        else:
            base = self._root_prefix(actor)
        prefix = await self._unique_folder_prefix(join_key(base, name), actor.id)

        folder = Folder(name=name, owner_id=actor.id, parent_id=parent_id, storage_key_prefix=prefix)
        self._session.add(folder)
        await self._session.flush()

        await attempt(
            "folder marker",
            self._blobs.put(join_key(prefix, FOLDER_MARKER), b"", FOLDER_MARKER_CONTENT_TYPE),
            folder_id=folder.id,
        )
        logger.info(f"Created folder {folder.id} {name!r} at {prefix!r}")
        return folder

    async def rename_folder(self, actor: User, folder_id: int, new_name: str) -> Folder:
        folder = await self._resolver.require_folder_owner(folder_id, actor.id, "folder.rename")
        name = validate_name(new_name)
        if name == folder.name:
            return folder
        if await self._sibling_folder(actor.id, folder.parent_id, name, exclude_id=folder.id):
            raise NameConflictError(f"A folder named {name!r} already exists here", field="name")
        folder.name = name
        folder.updated_at = utcnow()
        await self._session.flush()
        return folder

    async def move_folder(self, actor: User, folder_id: int, target_parent_id: Optional[int]) -> Folder:
        folder = await self._resolver.require_folder_owner(folder_id, actor.id, "folder.move")
        if target_parent_id == folder.id:
            raise InvalidMoveError("Cannot move a folder into itself", object_ref=f"folder:{folder_id}")

        if target_parent_id is not None:
            await self._resolver.require_folder_owner(target_parent_id, actor.id, "folder.move.target")
            for ancestor in await self.breadcrumbs(target_parent_id):
                if ancestor.id == folder.id:
                    raise CyclicMoveError(
                        "Cannot move a folder into one of its own subfolders",
                        object_ref=f"folder:{folder_id}",
                    )

        if await self._sibling_folder(actor.id, target_parent_id, folder.name, exclude_id=folder.id):
            raise NameConflictError(
                f"A folder named {folder.name!r} already exists in the destination", field="name"
            )

        folder.parent_id = target_parent_id
        folder.updated_at = utcnow()
        await self._session.flush()
        logger.info(f"Moved folder {folder.id} to parent {target_parent_id}")
        return folder

    async def delete_folder(self, actor: User, folder_id: int) -> Dict[str, int]:
        folder = await self._resolver.require_folder_owner(folder_id, actor.id, "folder.delete")

        subtree = await self.descendant_folder_ids([folder.id])
        file_keys = await self._session.execute(
            select(File.storage_key).where(File.folder_id.in_(subtree))
        )
        keys: Set[str] = set(file_keys.scalars().all())

        listing = await attempt(
            "folder prefix listing",
            self._blobs.list_prefix(folder.storage_key_prefix.rstrip("/") + "/"),
            folder_id=folder.id,
        )
        if listing.ok and listing.value:
            listed = set(listing.value)
            # keys under the prefix that belong to files outside this subtree stay
            foreign = await self._session.execute(
                select(File.storage_key).where(
                    File.storage_key.in_(listed),
                    or_(File.folder_id.is_(None), File.folder_id.not_in(subtree)),
                )
            )
            keys |= listed - set(foreign.scalars().all())

        cleanup = await attempt(
            "folder blob cleanup", self._blobs.delete_many(sorted(keys)), folder_id=folder.id
        )
        if cleanup.ok and cleanup.value:
            logger.warning(f"{len(cleanup.value)} blob(s) left behind after deleting folder {folder.id}")

        await self._session.delete(folder)
        await self._session.flush()
        logger.info(f"Deleted folder {folder_id} ({len(subtree)} folder(s), {len(keys)} blob key(s))")
        return {"folders": len(subtree), "blobs": len(keys)}

    async def ensure_structure(
        self, actor: User, paths: List[str], parent_id: Optional[int] = None
    ) -> Dict[str, int]:
        """
        Find or create every folder named by ``paths`` (e.g. ["A", "A/B"]).
        Returns a map from each input path to its folder id.
        """
        if not isinstance(paths, list):
            raise ValidationError("paths must be a list of strings", field="paths")
        await self._resolver.require_destination(parent_id, actor.id, "folder.create")

        cache: Dict[Tuple[Optional[int], str], int] = {}
        path_map: Dict[str, int] = {}

        def depth(p: str) -> int:
            return len([s for s in p.split("/") if s.strip()])

        for path in sorted(paths, key=depth):
            segments = [s.strip() for s in path.split("/") if s.strip()]
            if not segments:
                continue
            current = parent_id
            for segment in segments:
                cache_key = (current, segment)
                if cache_key not in cache:
                    existing = await self._sibling_folder(actor.id, current, validate_name(segment))
                    if existing is None:
                        existing = await self.create_folder(actor, segment, current)
                    cache[cache_key] = existing.id
                current = cache[cache_key]
            path_map[path] = current
        return path_map

    # -------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------

    async def create_or_overwrite_file(
        self,
        actor: User,
        filename: str,
        data: bytes,
        folder_id: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Upload under ``filename`` into ``folder_id`` (the actor's root when None).

        A file with the same name owned by the actor in that folder is
        overwritten in place; otherwise a new file row is created.
        """
        if len(data) > self._config.max_upload_bytes:
            raise ValidationError(
                f"File exceeds the {self._config.uploads.max_upload_size_mb} MB upload limit",
                field="file",
            )
        name = sanitize_filename(filename)
        folder = await self._resolver.require_destination(folder_id, actor.id, "file.upload")
        content_type = content_type or content_type_for(name)
        checksum = sha256_hex(data)

        existing = await self._sibling_file(actor.id, folder_id, name)
        if existing is not None:
            await self._blobs.put(existing.storage_key, data, content_type, {"original-filename": name})
            existing.record_content(len(data), checksum, content_type)
            await self._session.flush()
            log_document_event("overwrite", existing.id, byte_size=len(data), checksum=checksum)
            return UploadResult(file=existing, created=False)

        if folder is not None and folder.owner_id == actor.id:
            base = folder.storage_key_prefix
        else:
            base = self._root_prefix(actor)
        key = await self._unique_file_key(join_key(base, name), actor.id)

        await self._blobs.put(key, data, content_type, {"original-filename": name})
        file = File(
            name=name,
            owner_id=actor.id,
            folder_id=folder_id,
            storage_key=key,
            byte_size=len(data),
            content_type=content_type,
            checksum=checksum,
        )
        self._session.add(file)
        await self._session.flush()
        log_document_event("upload", file.id, byte_size=len(data), storage_key=key)
        return UploadResult(file=file, created=True)

    async def save_from_url(
        self,
        actor: User,
        name: str,
        folder_id: Optional[int] = None,
        url: Optional[str] = None,
        source_file_id: Optional[int] = None,
        source_file_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Save-as: store a document fetched from ``url`` or copied from an
        existing file, converting when the target extension differs.
        """
        if not url and source_file_id is None:
            raise ValidationError("Either url or sourceFileId is required", field="url")
        name = sanitize_filename(name)
        await self._resolver.require_destination(folder_id, actor.id, "file.save_as")

        source: Optional[File] = None
        source_ext = (source_file_type or "").lower().lstrip(".")
        if source_file_id is not None:
            source = await self._resolver.require_file(
                source_file_id, actor.id, SharePermission.VIEW, "file.save_as.source"
            )
            source_ext = source_ext or source.extension
        elif not source_ext:
            source_ext = extension_of(urlparse(url).path)

        target_ext = extension_of(name)
        needs_conversion = bool(target_ext and source_ext and target_ext != source_ext)

        if needs_conversion:
            if self._conversion is None:
                raise ValidationError("Format conversion is not available", field="name")
            if source is not None:
                if self._links is None:
                    raise ValidationError("Document links are not configured", field="sourceFileId")
                source_url = self._links.download_url(source.id)
            else:
                source_url = url
            converted_url = await self._conversion.convert(source_url, source_ext, target_ext, name)
            data = await self._fetch(converted_url)
        elif source is not None:
            data = await self._read_blob(source)
        else:
            data = await self._fetch(url)

        result = await self.create_or_overwrite_file(
            actor, name, data, folder_id, content_type_for(name)
        )
        log_document_event(
            "save_as",
            result.file.id,
            source_file_id=source_file_id,
            converted=needs_conversion,
        )
        return result

    async def _fetch(self, url: str) -> bytes:
        if self._http is None:
            raise ValidationError("Remote downloads are not available", field="url")
        return await fetch_remote_bytes(self._http, url, self._config.onlyoffice.request_timeout)

    async def rename_file(self, actor: User, file_id: int, new_name: str) -> File:
        file = await self._resolver.require_file_owner(file_id, actor.id, "file.rename")
        name = validate_name(new_name)
        if name == file.name:
            return file
        if await self._sibling_file(actor.id, file.folder_id, name, exclude_id=file.id):
            raise NameConflictError(f"A file named {name!r} already exists here", field="name")
        file.name = name
        await self._session.flush()
        return file

    async def move_file(self, actor: User, file_id: int, target_folder_id: Optional[int]) -> File:
        file = await self._resolver.require_file_owner(file_id, actor.id, "file.move")
        if target_folder_id is not None:
            await self._resolver.require_folder_owner(target_folder_id, actor.id, "file.move.target")
        if await self._sibling_file(actor.id, target_folder_id, file.name, exclude_id=file.id):
            raise NameConflictError(
                f"A file named {file.name!r} already exists in the destination", field="name"
            )
        file.folder_id = target_folder_id
        await self._session.flush()
        logger.info(f"Moved file {file.id} to folder {target_folder_id}")
        return file

    async def delete_file(self, actor: User, file_id: int) -> None:
        file = await self._resolver.require_file_owner(file_id, actor.id, "file.delete")
        await attempt("file blob delete", self._blobs.delete(file.storage_key), file_id=file.id)
        await self._session.delete(file)
        await self._session.flush()
        log_document_event("delete", file_id, storage_key=file.storage_key)

    # -------------------------------------------------------------------
    # Reading content
    # -------------------------------------------------------------------

    async def _read_blob(self, file: File) -> bytes:
        try:
            return await self._blobs.get(file.storage_key)
        except BlobNotFoundError as e:
            raise NotFoundError(f"Content of file {file.id} is missing", object_ref=f"file:{file.id}") from e

    async def read_file(self, actor: User, file_id: int) -> FileContent:
        file = await self._resolver.require_file(file_id, actor.id, SharePermission.VIEW, "file.download")
        data = await self._read_blob(file)
        return FileContent(file=file, data=data, total_size=len(data))

    async def read_file_range(
        self, actor: User, file_id: int, range_header: Optional[str]
    ) -> FileContent:
        """Bytes for an inline stream; raises RangeNotSatisfiableError for bad ranges."""
        file = await self._resolver.require_file(file_id, actor.id, SharePermission.VIEW, "file.stream")
        try:
            size = await self._blobs.size(file.storage_key)
        except BlobNotFoundError as e:
            raise NotFoundError(f"Content of file {file.id} is missing", object_ref=f"file:{file.id}") from e

        byte_range = parse_range(range_header, size)
        if byte_range is None:
            data = await self._read_blob(file)
            return FileContent(file=file, data=data, total_size=size)
        data = await self._blobs.get_range(file.storage_key, byte_range.start, byte_range.end)
        return FileContent(file=file, data=data, byte_range=byte_range, total_size=size)

    async def file_url(self, actor: User, file_id: int) -> str:
        """Presigned blob URL, or the backend download route when the store has none."""
        file = await self._resolver.require_file(file_id, actor.id, SharePermission.VIEW, "file.url")
        url = await self._blobs.presigned_url(
            file.storage_key, self._config.storage.presign_ttl_seconds, filename=file.name
        )
        if url:
            return url
        if self._links is None:
            raise ValidationError("No download URL available for this storage backend")
        return self._links.authenticated_download_url(file.id)

    # -------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------

    async def search(self, actor: User, query: str, parent_id: Optional[int] = None) -> SearchResults:
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return SearchResults()

        pattern = f"%{_escape_like(query.lower())}%"
        folder_match = func.lower(Folder.name).like(pattern, escape="\\")
        file_match = func.lower(File.name).like(pattern, escape="\\")

        if parent_id is not None:
            await self._resolver.require_folder(parent_id, actor.id, SharePermission.VIEW, "folder.search")
            scope = await self.descendant_folder_ids([parent_id])
            folder_scope = Folder.parent_id.in_(scope)
            file_scope = File.folder_id.in_(scope)
        else:
            shared = await self._session.execute(
                select(FolderShare.folder_id).where(FolderShare.user_id == actor.id)
            )
            shared_ids = list(shared.scalars().all())
            scope = await self.descendant_folder_ids(shared_ids)
            shared_files = select(FileShare.file_id).where(FileShare.user_id == actor.id)
            folder_scope = or_(
                Folder.owner_id == actor.id,
                Folder.id.in_(shared_ids),
                Folder.parent_id.in_(scope),
            )
            file_scope = or_(
                File.owner_id == actor.id,
                File.folder_id.in_(scope),
                File.id.in_(shared_files),
            )

        folders = await self._session.execute(
            select(Folder).where(folder_match, folder_scope).order_by(Folder.name).limit(SEARCH_LIMIT)
        )
        files = await self._session.execute(
            select(File).where(file_match, file_scope).order_by(File.name).limit(SEARCH_LIMIT)
        )
        folder_rows = list(folders.scalars().all())
        file_rows = list(files.scalars().all())

        owner_ids = {f.owner_id for f in folder_rows + file_rows if f.owner_id != actor.id}
        owners: Dict[int, str] = {}
        if owner_ids:
            rows = await self._session.execute(select(User).where(User.id.in_(owner_ids)))
            owners = {u.id: (u.display_name or u.username) for u in rows.scalars().all()}

        results = SearchResults()
        for folder in folder_rows:
            shared_item = folder.owner_id != actor.id
            results.folders.append(SearchHit(
                item=folder,
                path=await self._path_label(folder.parent_id),
                is_shared=shared_item,
                owner_name=owners.get(folder.owner_id) if shared_item else None,
            ))
        for file in file_rows:
            shared_item = file.owner_id != actor.id
            results.files.append(SearchHit(
                item=file,
                path=await self._path_label(file.folder_id),
                is_shared=shared_item,
                owner_name=owners.get(file.owner_id) if shared_item else None,
            ))
        return results
