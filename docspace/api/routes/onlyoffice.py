"""
Document editor routes — /onlyoffice/...

The callback route is called by the document server, not by a user. It
always answers HTTP 200 with ``{"error": 0}`` (handled) or ``{"error": 1}``
(the document server should retry).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.api.deps import get_current_user, get_documents, get_session
from docspace.api.schemas import SupportOut
from docspace.db.models import User
from docspace.documents.session import RETRY, DocumentSessionManager

logger = logging.getLogger("docspace.api.onlyoffice")

router = APIRouter(prefix="/onlyoffice", tags=["onlyoffice"])


@router.get("/check/{file_id}", response_model=SupportOut)
async def check_support(
    file_id: int,
    user: User = Depends(get_current_user),
    documents: DocumentSessionManager = Depends(get_documents),
):
    return SupportOut(**await documents.check_support(user, file_id))


@router.get("/config/{file_id}")
async def editor_config(
    file_id: int,
    mode: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    documents: DocumentSessionManager = Depends(get_documents),
):
    editor = await documents.open_session(user, file_id, mode)
    return editor.to_dict()


@router.post("/callback/{file_id}")
async def editor_callback(
    file_id: int,
    request: Request,
    authorization: Optional[str] = Header(None),
    documents: DocumentSessionManager = Depends(get_documents),
    session: AsyncSession = Depends(get_session),
):
    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"Callback for file {file_id} with a non-JSON body")
        return dict(RETRY)
    if not isinstance(body, dict):
        logger.warning(f"Callback for file {file_id} with a non-object body")
        return dict(RETRY)

    try:
        result = await documents.handle_callback(file_id, body, authorization)
        await session.commit()
    except Exception:
        logger.exception(f"Callback for file {file_id} failed")
        await session.rollback()
        return dict(RETRY)
    return result
