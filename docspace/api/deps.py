"""
DocSpace API Dependencies — Runtime, DB session, authenticated user, services.

Authentication: ``Authorization: Bearer <jwt>`` signed with auth.jwt_secret,
``sub`` = user id. The verified user is also published as the current
RequestContext so audit log lines carry it.

Sessions do not auto-commit; mutating routes call ``session.commit()``
before returning.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docspace.db.models import User
from docspace.documents.session import DocumentSessionManager
from docspace.engine.context import RequestContext, set_request_context
from docspace.engine.errors import UnauthorizedError
from docspace.engine.runtime import Runtime
from docspace.security.sharing import SharingLedger
from docspace.storage.tree import StorageTree

logger = logging.getLogger("docspace.api.deps")


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


async def get_session(runtime: Runtime = Depends(get_runtime)) -> AsyncIterator[AsyncSession]:
    session = runtime.session_factory()
    try:
        yield session
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    runtime: Runtime = Depends(get_runtime),
    session: AsyncSession = Depends(get_session),
    authorization: Optional[str] = Header(None),
) -> User:
    token = _bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Missing bearer token")

    claims = runtime.api_signer.verify_access_token(token)
    if claims is None:
        raise UnauthorizedError("Invalid or expired token")

    user = await session.get(User, int(claims["sub"]))
    if user is None:
        raise UnauthorizedError("Token subject no longer exists")

    set_request_context(RequestContext(user_id=user.id, username=user.username))
    return user


def get_tree(
    runtime: Runtime = Depends(get_runtime),
    session: AsyncSession = Depends(get_session),
) -> StorageTree:
    return runtime.storage_tree(session)


def get_sharing(
    runtime: Runtime = Depends(get_runtime),
    session: AsyncSession = Depends(get_session),
) -> SharingLedger:
    return runtime.sharing(session)


def get_documents(
    runtime: Runtime = Depends(get_runtime),
    session: AsyncSession = Depends(get_session),
) -> DocumentSessionManager:
    return runtime.documents(session)
