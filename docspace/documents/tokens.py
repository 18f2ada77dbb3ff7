"""
DocSpace Tokens — HS256 JWT signing for the document server and API access.

Three kinds of token share one mechanism:
- Editor/conversion payload signatures: the payload itself (minus any
  ``token`` field) is the JWT claim set, as the document server expects.
- Capability tokens: ``{"scope": "download", "file_id": …, "exp": …}``,
  embedded in the download URL handed to the document server.
- Bearer tokens for the HTTP API: ``{"sub": "<user id>", "username": …}``.

verify() returns the claims or None; it never raises on a bad token.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

logger = logging.getLogger("docspace.documents.tokens")

DOWNLOAD_SCOPE = "download"


class TokenSigner:
    """Signs and verifies HS256 tokens with one shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm

    def sign(self, payload: Dict[str, Any]) -> str:
        claims = copy.deepcopy(payload)
        claims.pop("token", None)
        claims.setdefault("iat", int(datetime.now(timezone.utc).timestamp()))
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("Token verification failed: token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.info(f"Token verification failed: {type(e).__name__}")
            return None

    # -------------------------------------------------------------------
    # Capability tokens
    # -------------------------------------------------------------------

    def issue_download_token(self, file_id: int, ttl_seconds: int) -> str:
        expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        return self.sign({"scope": DOWNLOAD_SCOPE, "file_id": file_id, "exp": expires})

    def verify_download_token(self, token: Optional[str], file_id: int) -> bool:
        claims = self.verify(token)
        if claims is None:
            return False
        if claims.get("scope") != DOWNLOAD_SCOPE or claims.get("file_id") != file_id:
            logger.info(f"Download token rejected for file {file_id}: scope or file mismatch")
            return False
        return True

    # -------------------------------------------------------------------
    # API bearer tokens
    # -------------------------------------------------------------------

    def issue_access_token(self, user_id: int, username: str, ttl_seconds: int) -> str:
        expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        return self.sign({"sub": str(user_id), "username": username, "exp": expires})

    def verify_access_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        claims = self.verify(token)
        if claims is None:
            return None
        sub = claims.get("sub")
        if sub is None or not str(sub).isdigit():
            logger.info("Access token rejected: missing or non-numeric subject")
            return None
        return claims
