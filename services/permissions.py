"""
Permission checking for admin-only operations.

Core operations never authenticate anyone themselves. The front end resolves
the caller's identity, asks `AuthorizationService.require_admin` for an
`AdminContext`, and hands that context to the operation.
"""

import logging
from dataclasses import dataclass

from config import ADMIN_USER_IDS
from repositories.interfaces import IUserRepository
from services import error_codes
from services.result import Result

logger = logging.getLogger("racebet.services.permissions")


@dataclass(frozen=True)
class AdminContext:
    """Proof that the caller was authorized as an admin for this request."""

    user_id: int
    source: str  # "allowlist" or "role"


class AuthorizationService:
    """Role lookup against ADMIN_USER_IDS and the users.is_admin flag."""

    def __init__(self, user_repo: IUserRepository, admin_user_ids: list[int] | None = None):
        self.user_repo = user_repo
        self.admin_user_ids = frozenset(ADMIN_USER_IDS if admin_user_ids is None else admin_user_ids)

    def is_allowlisted(self, user_id: int) -> bool:
        """
        Check if the user is explicitly allowlisted via ADMIN_USER_IDS.
        If ADMIN_USER_IDS is empty/unset, nobody is considered admin by this check.
        """
        return user_id in self.admin_user_ids

    def is_admin(self, user_id: int) -> bool:
        if self.is_allowlisted(user_id):
            return True
        return self.user_repo.is_admin(user_id)

    def require_admin(self, user_id: int) -> Result[AdminContext]:
        """
        Resolve an admin context for the caller.

        Returns:
            Result.ok(AdminContext) if the caller is an admin
            Result.fail(..., code=PERMISSION_DENIED) otherwise
        """
        if self.is_allowlisted(user_id):
            return Result.ok(AdminContext(user_id=user_id, source="allowlist"))
        if self.user_repo.is_admin(user_id):
            return Result.ok(AdminContext(user_id=user_id, source="role"))
        logger.warning(f"Admin access denied for user {user_id}")
        return Result.fail("Admin access required.", code=error_codes.PERMISSION_DENIED)
