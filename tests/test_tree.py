"""Unit tests for docspace.storage.tree — folder/file operations over the blob store."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from docspace.db.models import File, Folder, FolderShare
from docspace.engine.errors import (
    BlobStoreError,
    ConversionFailedError,
    CyclicMoveError,
    ForbiddenError,
    InvalidMoveError,
    NameConflictError,
    NotFoundError,
    RangeNotSatisfiableError,
    RemoteFetchError,
    ValidationError,
)
from docspace.storage.tree import sha256_hex

DOCUMENT_SERVER = "http://docs.test"
BACKEND = "http://api.test"


async def _count(session, model, *where):
    result = await session.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


async def _share(session, folder, user, permission="VIEW"):
    session.add(FolderShare(folder_id=folder.id, user_id=user.id, permission=permission))
    await session.flush()


class TestCreateFolder:
    @pytest.mark.asyncio
    async def test_root_folder(self, tree, blobs, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "  Docs ")
        assert docs.name == "Docs"
        assert docs.parent_id is None
        assert docs.owner_id == alice.id
        assert docs.storage_key_prefix == "users/Alice/Docs"
        assert await blobs.list_prefix("users/Alice/Docs/") == ["users/Alice/Docs/.folder"]

    @pytest.mark.asyncio
    async def test_nested_prefix(self, tree, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        sub = await tree.create_folder(alice, "2024", docs.id)
        assert sub.parent_id == docs.id
        assert sub.storage_key_prefix == "users/Alice/Docs/2024"

    @pytest.mark.asyncio
    async def test_duplicate_name(self, tree, users):
        await tree.create_folder(users["alice"], "Docs")
        with pytest.raises(NameConflictError):
            await tree.create_folder(users["alice"], "Docs")

    @pytest.mark.asyncio
    async def test_same_name_different_owner(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        shared = await tree.create_folder(alice, "Shared")
        await _share(session, shared, bob, "EDIT")
        await tree.create_folder(alice, "Docs", shared.id)
        bobs = await tree.create_folder(bob, "Docs", shared.id)
        assert bobs.owner_id == bob.id
        assert bobs.storage_key_prefix == "users/Bob/Docs"

    @pytest.mark.asyncio
    async def test_prefix_collision_disambiguated(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        shared = await tree.create_folder(alice, "Shared")
        await _share(session, shared, bob, "EDIT")
        first = await tree.create_folder(bob, "Notes", shared.id)
        second = await tree.create_folder(bob, "Notes")
        assert first.storage_key_prefix == "users/Bob/Notes"
        assert second.storage_key_prefix == f"users/Bob/Notes__u{bob.id}"

    @pytest.mark.asyncio
    async def test_view_share_cannot_create(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        await _share(session, docs, bob, "VIEW")
        with pytest.raises(ForbiddenError):
            await tree.create_folder(bob, "Mine", docs.id)

    @pytest.mark.asyncio
    async def test_invalid_name(self, tree, users):
        with pytest.raises(ValidationError):
            await tree.create_folder(users["alice"], "a/b")

    @pytest.mark.asyncio
    async def test_marker_failure_does_not_fail(self, tree, blobs, users, monkeypatch):
        monkeypatch.setattr(blobs, "put", AsyncMock(side_effect=BlobStoreError("down")))
        folder = await tree.create_folder(users["alice"], "Docs")
        assert folder.id is not None


class TestListChildren:
    @pytest.mark.asyncio
    async def test_root_shows_only_owned(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        await _share(session, docs, bob)
        await tree.create_folder(bob, "Mine")
        await tree.create_or_overwrite_file(bob, "b.txt", b"b")

        listing = await tree.list_children(bob)
        assert [f.name for f in listing.folders] == ["Mine"]
        assert [f.name for f in listing.files] == ["b.txt"]
        assert listing.current_folder is None
        assert listing.breadcrumbs == []

    @pytest.mark.asyncio
    async def test_inside_shared_folder_lists_everything(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        sub = await tree.create_folder(alice, "Sub", docs.id)
        await tree.create_or_overwrite_file(alice, "a.txt", b"a", docs.id)
        await _share(session, docs, bob)

        listing = await tree.list_children(bob, docs.id)
        assert [f.id for f in listing.folders] == [sub.id]
        assert [f.name for f in listing.files] == ["a.txt"]
        assert listing.current_folder.id == docs.id
        assert listing.parent_id == docs.id

        nested = await tree.list_children(bob, sub.id)
        assert [f.name for f in nested.breadcrumbs] == ["Docs", "Sub"]

    @pytest.mark.asyncio
    async def test_no_access(self, tree, users):
        docs = await tree.create_folder(users["alice"], "Docs")
        with pytest.raises(ForbiddenError):
            await tree.list_children(users["bob"], docs.id)


class TestRenameAndMoveFolder:
    @pytest.mark.asyncio
    async def test_rename_keeps_prefix(self, tree, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        renamed = await tree.rename_folder(alice, docs.id, "Papers")
        assert renamed.name == "Papers"
        assert renamed.storage_key_prefix == "users/Alice/Docs"

    @pytest.mark.asyncio
    async def test_rename_conflict(self, tree, users):
        alice = users["alice"]
        await tree.create_folder(alice, "A")
        b = await tree.create_folder(alice, "B")
        with pytest.raises(NameConflictError):
            await tree.rename_folder(alice, b.id, "A")

    @pytest.mark.asyncio
    async def test_rename_requires_owner(self, tree, session, users):
        docs = await tree.create_folder(users["alice"], "Docs")
        await _share(session, docs, users["bob"], "EDIT")
        with pytest.raises(ForbiddenError):
            await tree.rename_folder(users["bob"], docs.id, "Mine")

    @pytest.mark.asyncio
    async def test_move(self, tree, users):
        alice = users["alice"]
        a = await tree.create_folder(alice, "A")
        b = await tree.create_folder(alice, "B")
        moved = await tree.move_folder(alice, b.id, a.id)
        assert moved.parent_id == a.id
        back = await tree.move_folder(alice, b.id, None)
        assert back.parent_id is None

    @pytest.mark.asyncio
    async def test_move_into_itself(self, tree, users):
        a = await tree.create_folder(users["alice"], "A")
        with pytest.raises(InvalidMoveError):
            await tree.move_folder(users["alice"], a.id, a.id)

    @pytest.mark.asyncio
    async def test_move_into_descendant(self, tree, users):
        alice = users["alice"]
        a = await tree.create_folder(alice, "A")
        b = await tree.create_folder(alice, "B", a.id)
        c = await tree.create_folder(alice, "C", b.id)
        with pytest.raises(CyclicMoveError):
            await tree.move_folder(alice, a.id, c.id)
        assert a.parent_id is None

    @pytest.mark.asyncio
    async def test_move_name_conflict(self, tree, users):
        alice = users["alice"]
        a = await tree.create_folder(alice, "A")
        await tree.create_folder(alice, "X", a.id)
        x = await tree.create_folder(alice, "X")
        with pytest.raises(NameConflictError):
            await tree.move_folder(alice, x.id, a.id)

    @pytest.mark.asyncio
    async def test_move_target_must_be_owned(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        theirs = await tree.create_folder(alice, "Theirs")
        await _share(session, theirs, bob, "EDIT")
        mine = await tree.create_folder(bob, "Mine")
        with pytest.raises(ForbiddenError):
            await tree.move_folder(bob, mine.id, theirs.id)


class TestDeleteFolder:
    @pytest.mark.asyncio
    async def test_cascade(self, tree, session, blobs, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        sub = await tree.create_folder(alice, "Sub", docs.id)
        await tree.create_or_overwrite_file(alice, "a.txt", b"a", docs.id)
        await tree.create_or_overwrite_file(alice, "b.txt", b"b", sub.id)
        await _share(session, docs, bob)
        keep = await tree.create_or_overwrite_file(alice, "keep.txt", b"k")

        summary = await tree.delete_folder(alice, docs.id)
        assert summary["folders"] == 2

        assert await _count(session, Folder) == 0
        assert await _count(session, File) == 1
        assert await _count(session, FolderShare) == 0
        assert await blobs.list_prefix("users/Alice/Docs/") == []
        assert await blobs.get(keep.file.storage_key) == b"k"

    @pytest.mark.asyncio
    async def test_foreign_blobs_under_prefix_survive(self, tree, session, blobs, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        inside = await tree.create_or_overwrite_file(alice, "a.txt", b"a", docs.id)
        outside = await tree.create_or_overwrite_file(alice, "b.txt", b"b")
        await tree.move_file(alice, inside.file.id, None)
        # b.txt now lives in Docs but its blob stays at the root
        await tree.move_file(alice, outside.file.id, docs.id)

        await tree.delete_folder(alice, docs.id)
        assert await blobs.get("users/Alice/Docs/a.txt") == b"a"
        assert await _count(session, File) == 1

    @pytest.mark.asyncio
    async def test_cleanup_failure_still_deletes_rows(self, tree, session, blobs, users, monkeypatch):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        monkeypatch.setattr(blobs, "delete_many", AsyncMock(side_effect=BlobStoreError("down")))
        await tree.delete_folder(alice, docs.id)
        assert await _count(session, Folder) == 0

    @pytest.mark.asyncio
    async def test_requires_owner(self, tree, session, users):
        docs = await tree.create_folder(users["alice"], "Docs")
        await _share(session, docs, users["bob"], "EDIT")
        with pytest.raises(ForbiddenError):
            await tree.delete_folder(users["bob"], docs.id)


class TestEnsureStructure:
    @pytest.mark.asyncio
    async def test_creates_and_reuses(self, tree, session, users):
        alice = users["alice"]
        existing = await tree.create_folder(alice, "A")
        path_map = await tree.ensure_structure(alice, ["A/B/C", "A", "A/B", "D"])
        assert path_map["A"] == existing.id
        b = await session.get(Folder, path_map["A/B"])
        c = await session.get(Folder, path_map["A/B/C"])
        assert b.parent_id == existing.id
        assert c.parent_id == b.id
        assert await _count(session, Folder) == 4

        again = await tree.ensure_structure(alice, ["A/B/C"])
        assert again == {"A/B/C": path_map["A/B/C"]}
        assert await _count(session, Folder) == 4

    @pytest.mark.asyncio
    async def test_under_parent(self, tree, users):
        alice = users["alice"]
        base = await tree.create_folder(alice, "Base")
        path_map = await tree.ensure_structure(alice, ["X/Y"], base.id)
        assert set(path_map) == {"X/Y"}

    @pytest.mark.asyncio
    async def test_paths_must_be_list(self, tree, users):
        with pytest.raises(ValidationError):
            await tree.ensure_structure(users["alice"], "A/B")


class TestUpload:
    @pytest.mark.asyncio
    async def test_create(self, tree, blobs, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        result = await tree.create_or_overwrite_file(alice, "report.docx", b"v1", docs.id)
        assert result.created is True
        f = result.file
        assert f.storage_key == "users/Alice/Docs/report.docx"
        assert f.byte_size == 2
        assert f.checksum == sha256_hex(b"v1")
        assert f.content_type.endswith("wordprocessingml.document")
        assert await blobs.get(f.storage_key) == b"v1"

    @pytest.mark.asyncio
    async def test_overwrite_in_place(self, tree, blobs, users):
        alice = users["alice"]
        first = await tree.create_or_overwrite_file(alice, "a.txt", b"one")
        key_before = first.file.document_key
        second = await tree.create_or_overwrite_file(alice, "a.txt", b"three")
        assert second.created is False
        assert second.file.id == first.file.id
        assert second.file.byte_size == 5
        assert second.file.document_key != key_before
        assert await blobs.get(second.file.storage_key) == b"three"

    @pytest.mark.asyncio
    async def test_other_owner_same_name_is_new_file(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        await _share(session, docs, bob, "EDIT")
        mine = await tree.create_or_overwrite_file(alice, "a.txt", b"a", docs.id)
        theirs = await tree.create_or_overwrite_file(bob, "a.txt", b"b", docs.id)
        assert theirs.created is True
        assert theirs.file.id != mine.file.id
        assert theirs.file.storage_key == "users/Bob/a.txt"

    @pytest.mark.asyncio
    async def test_key_collision_disambiguated(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        await _share(session, docs, bob, "EDIT")
        await tree.create_or_overwrite_file(bob, "n.txt", b"1", docs.id)
        other = await tree.create_or_overwrite_file(bob, "n.txt", b"2")
        assert other.file.storage_key == f"users/Bob/n__u{bob.id}.txt"

    @pytest.mark.asyncio
    async def test_tmp_suffixed_sibling_keeps_content(self, tree, users):
        alice = users["alice"]
        kept = await tree.create_or_overwrite_file(alice, "report.docx.tmp", b"KEEP-ME")
        await tree.create_or_overwrite_file(alice, "report.docx", b"v1")
        await tree.create_or_overwrite_file(alice, "report.docx", b"v2")
        content = await tree.read_file(alice, kept.file.id)
        assert content.data == b"KEEP-ME"

    @pytest.mark.asyncio
    async def test_folder_after_same_named_file(self, tree, users):
        alice = users["alice"]
        plain = await tree.create_or_overwrite_file(alice, "Docs", b"plain")
        docs = await tree.create_folder(alice, "Docs")
        assert docs.storage_key_prefix == f"users/Alice/Docs__u{alice.id}"
        inner = await tree.create_or_overwrite_file(alice, "a.txt", b"inner", docs.id)
        assert (await tree.read_file(alice, inner.file.id)).data == b"inner"
        assert (await tree.read_file(alice, plain.file.id)).data == b"plain"

    @pytest.mark.asyncio
    async def test_file_after_same_named_folder(self, tree, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        inner = await tree.create_or_overwrite_file(alice, "a.txt", b"inner", docs.id)
        plain = await tree.create_or_overwrite_file(alice, "Docs", b"plain")
        assert plain.file.storage_key == f"users/Alice/Docs__u{alice.id}"
        assert (await tree.read_file(alice, plain.file.id)).data == b"plain"
        assert (await tree.read_file(alice, inner.file.id)).data == b"inner"

    @pytest.mark.asyncio
    async def test_file_named_like_folder_marker(self, tree, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        f = await tree.create_or_overwrite_file(alice, ".folder", b"mine", docs.id)
        assert f.file.storage_key == f"users/Alice/Docs/.folder__u{alice.id}"
        assert (await tree.read_file(alice, f.file.id)).data == b"mine"

    @pytest.mark.asyncio
    async def test_view_only_cannot_upload(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        docs = await tree.create_folder(alice, "Docs")
        await _share(session, docs, bob, "VIEW")
        with pytest.raises(ForbiddenError):
            await tree.create_or_overwrite_file(bob, "x.txt", b"x", docs.id)

    @pytest.mark.asyncio
    async def test_size_limit(self, tree, users):
        with pytest.raises(ValidationError):
            await tree.create_or_overwrite_file(users["alice"], "big.bin", b"x" * (1024 * 1024 + 1))

    @pytest.mark.asyncio
    async def test_sanitizes_name(self, tree, users):
        result = await tree.create_or_overwrite_file(users["alice"], "C:\\tmp\\notes.txt", b"n")
        assert result.file.name == "notes.txt"

    @pytest.mark.asyncio
    async def test_blob_failure_leaves_no_row(self, tree, session, blobs, users, monkeypatch):
        monkeypatch.setattr(blobs, "put", AsyncMock(side_effect=BlobStoreError("down")))
        with pytest.raises(BlobStoreError):
            await tree.create_or_overwrite_file(users["alice"], "a.txt", b"a")
        assert await _count(session, File) == 0


class TestFileOperations:
    @pytest.mark.asyncio
    async def test_rename_keeps_key_and_identity(self, tree, users):
        alice = users["alice"]
        f = (await tree.create_or_overwrite_file(alice, "a.txt", b"a")).file
        key, doc_key = f.storage_key, f.document_key
        renamed = await tree.rename_file(alice, f.id, "b.txt")
        assert renamed.name == "b.txt"
        assert renamed.storage_key == key
        assert renamed.document_key == doc_key

    @pytest.mark.asyncio
    async def test_rename_conflict(self, tree, users):
        alice = users["alice"]
        await tree.create_or_overwrite_file(alice, "a.txt", b"a")
        b = (await tree.create_or_overwrite_file(alice, "b.txt", b"b")).file
        with pytest.raises(NameConflictError):
            await tree.rename_file(alice, b.id, "a.txt")

    @pytest.mark.asyncio
    async def test_move(self, tree, users):
        alice = users["alice"]
        docs = await tree.create_folder(alice, "Docs")
        f = (await tree.create_or_overwrite_file(alice, "a.txt", b"a")).file
        moved = await tree.move_file(alice, f.id, docs.id)
        assert moved.folder_id == docs.id
        assert moved.storage_key == "users/Alice/a.txt"

    @pytest.mark.asyncio
    async def test_delete(self, tree, session, blobs, users):
        alice = users["alice"]
        f = (await tree.create_or_overwrite_file(alice, "a.txt", b"a")).file
        key = f.storage_key
        await tree.delete_file(alice, f.id)
        assert await _count(session, File) == 0
        assert await blobs.list_prefix(key) == []

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, tree, users):
        f = (await tree.create_or_overwrite_file(users["alice"], "a.txt", b"a")).file
        with pytest.raises(ForbiddenError):
            await tree.delete_file(users["bob"], f.id)


class TestReading:
    @pytest.mark.asyncio
    async def test_read_file(self, tree, users):
        f = (await tree.create_or_overwrite_file(users["alice"], "a.txt", b"hello")).file
        content = await tree.read_file(users["alice"], f.id)
        assert content.data == b"hello"
        assert content.total_size == 5

    @pytest.mark.asyncio
    async def test_read_without_access(self, tree, users):
        f = (await tree.create_or_overwrite_file(users["alice"], "a.txt", b"hello")).file
        with pytest.raises(ForbiddenError):
            await tree.read_file(users["bob"], f.id)

    @pytest.mark.asyncio
    async def test_missing_blob(self, tree, blobs, users):
        f = (await tree.create_or_overwrite_file(users["alice"], "a.txt", b"hello")).file
        await blobs.delete(f.storage_key)
        with pytest.raises(NotFoundError):
            await tree.read_file(users["alice"], f.id)

    @pytest.mark.asyncio
    async def test_ranges(self, tree, users):
        alice = users["alice"]
        f = (await tree.create_or_overwrite_file(alice, "v.bin", bytes(range(100)))).file

        partial = await tree.read_file_range(alice, f.id, "bytes=10-19")
        assert partial.data == bytes(range(10, 20))
        assert partial.byte_range.content_range() == "bytes 10-19/100"

        full = await tree.read_file_range(alice, f.id, None)
        assert full.byte_range is None
        assert len(full.data) == 100

        with pytest.raises(RangeNotSatisfiableError):
            await tree.read_file_range(alice, f.id, "bytes=100-")

    @pytest.mark.asyncio
    async def test_file_url_falls_back_to_backend_route(self, tree, users):
        f = (await tree.create_or_overwrite_file(users["alice"], "a.txt", b"a")).file
        assert await tree.file_url(users["alice"], f.id) == f"{BACKEND}/folders/files/{f.id}/download"


class TestSaveFromUrl:
    @pytest.mark.asyncio
    async def test_plain_download(self, tree, remote, users):
        remote.serve("http://files.test/doc.docx", b"remote bytes")
        result = await tree.save_from_url(users["alice"], "copy.docx", url="http://files.test/doc.docx")
        assert result.created is True
        assert result.file.byte_size == len(b"remote bytes")

    @pytest.mark.asyncio
    async def test_conversion_when_extension_differs(self, tree, remote, blobs, users):
        remote.serve("http://files.test/doc.docx", b"docx")
        remote.reply_json(f"{DOCUMENT_SERVER}/ConvertService.ashx",
                          {"endConvert": True, "fileUrl": "http://docs.test/out.pdf"})
        remote.serve("http://docs.test/out.pdf", b"%PDF")

        result = await tree.save_from_url(users["alice"], "doc.pdf", url="http://files.test/doc.docx")
        assert await blobs.get(result.file.storage_key) == b"%PDF"
        assert result.file.content_type == "application/pdf"
        body = remote.json_bodies(f"{DOCUMENT_SERVER}/ConvertService.ashx")[0]
        assert body["filetype"] == "docx"
        assert body["outputtype"] == "pdf"

    @pytest.mark.asyncio
    async def test_copy_from_source_file(self, tree, remote, users):
        alice = users["alice"]
        src = (await tree.create_or_overwrite_file(alice, "a.docx", b"original")).file
        result = await tree.save_from_url(alice, "b.docx", source_file_id=src.id)
        assert result.file.id != src.id
        assert result.file.checksum == sha256_hex(b"original")
        assert remote.requests == []

    @pytest.mark.asyncio
    async def test_convert_source_file_uses_capability_url(self, tree, remote, api_signer, users):
        alice = users["alice"]
        src = (await tree.create_or_overwrite_file(alice, "a.docx", b"original")).file
        remote.reply_json(f"{DOCUMENT_SERVER}/ConvertService.ashx", {"fileUrl": "http://docs.test/o.pdf"})
        remote.serve("http://docs.test/o.pdf", b"%PDF")
        await tree.save_from_url(alice, "a.pdf", source_file_id=src.id)

        body = remote.json_bodies(f"{DOCUMENT_SERVER}/ConvertService.ashx")[0]
        assert body["url"].startswith(f"{BACKEND}/folders/files/{src.id}/onlyoffice-download?token=")
        token = body["url"].split("token=", 1)[1]
        assert api_signer.verify_download_token(token, src.id)

    @pytest.mark.asyncio
    async def test_conversion_error(self, tree, remote, session, users):
        remote.serve("http://files.test/doc.docx", b"docx")
        remote.reply_json(f"{DOCUMENT_SERVER}/ConvertService.ashx", {"error": -3})
        with pytest.raises(ConversionFailedError):
            await tree.save_from_url(users["alice"], "doc.pdf", url="http://files.test/doc.docx")
        assert await _count(session, File) == 0

    @pytest.mark.asyncio
    async def test_remote_failure(self, tree, users):
        with pytest.raises(RemoteFetchError):
            await tree.save_from_url(users["alice"], "x.docx", url="http://files.test/missing.docx")

    @pytest.mark.asyncio
    async def test_requires_url_or_source(self, tree, users):
        with pytest.raises(ValidationError):
            await tree.save_from_url(users["alice"], "x.docx")


class TestSearch:
    @pytest.mark.asyncio
    async def test_owned_and_shared(self, tree, session, users):
        alice, bob = users["alice"], users["bob"]
        reports = await tree.create_folder(alice, "Reports")
        await tree.create_or_overwrite_file(alice, "Q1 report.docx", b"q", reports.id)
        await tree.create_folder(alice, "Private report")
        await _share(session, reports, bob)
        await tree.create_or_overwrite_file(bob, "my REPORT.txt", b"m")

        results = await tree.search(bob, "report")
        assert [h.item.name for h in results.folders] == ["Reports"]
        assert sorted(h.item.name for h in results.files) == ["Q1 report.docx", "my REPORT.txt"]

        shared_hit = next(h for h in results.files if h.item.name == "Q1 report.docx")
        assert shared_hit.is_shared is True
        assert shared_hit.owner_name == "Alice"
        assert shared_hit.path == "Reports"

        own_hit = next(h for h in results.files if h.item.name == "my REPORT.txt")
        assert own_hit.is_shared is False
        assert own_hit.owner_name is None
        assert own_hit.path == "Root"

    @pytest.mark.asyncio
    async def test_scoped_to_subtree(self, tree, users):
        alice = users["alice"]
        a = await tree.create_folder(alice, "A")
        b = await tree.create_folder(alice, "B")
        await tree.create_or_overwrite_file(alice, "note-a.txt", b"a", a.id)
        await tree.create_or_overwrite_file(alice, "note-b.txt", b"b", b.id)
        results = await tree.search(alice, "note", a.id)
        assert [h.item.name for h in results.files] == ["note-a.txt"]

    @pytest.mark.asyncio
    async def test_short_query(self, tree, users):
        await tree.create_or_overwrite_file(users["alice"], "a.txt", b"a")
        results = await tree.search(users["alice"], "a")
        assert results.folders == [] and results.files == []

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, tree, users):
        alice = users["alice"]
        await tree.create_or_overwrite_file(alice, "100%.txt", b"a")
        await tree.create_or_overwrite_file(alice, "1000.txt", b"b")
        results = await tree.search(alice, "0%")
        assert [h.item.name for h in results.files] == ["100%.txt"]
