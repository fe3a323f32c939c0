"""
User registration and lookups.
"""

import logging

from domain.exceptions import LedgerError, NotFoundError
from domain.models.user import User
from repositories.interfaces import IUserRepository
from services import error_codes
from services.interfaces import IUserService
from services.permissions import AdminContext
from services.result import Result

logger = logging.getLogger("racebet.services.user")


class UserService(IUserService):
    """Creates users on first contact and serves profile reads."""

    def __init__(self, user_repo: IUserRepository):
        self.user_repo = user_repo

    def register_user(self, user_id: int, username: str | None = None) -> Result[User]:
        """Create the user if unknown, otherwise refresh the display name."""
        try:
            row = self.user_repo.register(user_id, username)
        except LedgerError as exc:
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error registering user {user_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)
        return Result.ok(User.from_row(row))

    def get_user(self, user_id: int) -> Result[User]:
        try:
            row = self.user_repo.get_by_id(user_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        if row is None:
            return Result.fail(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)
        return Result.ok(User.from_row(row))

    def list_users(self, admin: AdminContext, limit: int = 100, offset: int = 0) -> Result[list[User]]:
        try:
            rows = self.user_repo.get_all(limit=limit, offset=offset)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([User.from_row(row) for row in rows])

    def set_admin(self, admin: AdminContext, user_id: int, is_admin: bool) -> Result[User]:
        try:
            if not self.user_repo.set_admin(user_id, is_admin):
                raise NotFoundError(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)
            row = self.user_repo.get_by_id(user_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        logger.info(f"Admin {admin.user_id} set is_admin={is_admin} for user {user_id}")
        return Result.ok(User.from_row(row))
