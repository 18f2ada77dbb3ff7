"""DocSpace Security — Effective permissions and share grants."""

from docspace.security.permissions import PermissionResolver  # noqa: F401
from docspace.security.sharing import SharingLedger  # noqa: F401

__all__ = ["PermissionResolver", "SharingLedger"]
