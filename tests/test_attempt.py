"""Unit tests for docspace.engine.attempt — best-effort side operations."""

import logging

import pytest

from docspace.engine.attempt import Attempt, attempt
from docspace.engine.errors import BlobStoreError


async def _value(v):
    return v


async def _boom():
    raise BlobStoreError("disk full")


class TestAttempt:
    @pytest.mark.asyncio
    async def test_success(self):
        outcome = await attempt("marker", _value(42))
        assert outcome.ok is True
        assert outcome.value == 42
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_failure_is_captured_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="docspace.engine.attempt"):
            outcome = await attempt("cleanup", _boom(), folder_id=3)
        assert outcome.ok is False
        assert isinstance(outcome.error, BlobStoreError)
        assert "cleanup" in caplog.text
        assert caplog.records[-1].folder_id == 3

    def test_to_dict(self):
        d = Attempt(label="x", ok=False, error=ValueError("bad")).to_dict()
        assert d["label"] == "x"
        assert d["ok"] is False
        assert "bad" in d["error"]
