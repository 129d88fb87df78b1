from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Account
from app.core.enums import AccountRole
from app.core.exceptions import DuplicateError


class DedupResolver:
    """
    Answers "does this identity already exist" inside the caller's transaction.

    Email and username are compared case-insensitively across every role. Only a
    parent can be reused; any other match is a DuplicateError. This is a pre-check:
    the unique indexes on accounts remain the final word under concurrent batches
    (see ``duplicate_from_integrity_error``).
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def resolve(
        self,
        email: str,
        username: Optional[str],
        intended_role: AccountRole,
    ) -> Optional[Account]:
        email_key = (email or "").strip().lower()
        username_key = (username or "").strip().lower()

        conditions = [func.lower(Account.email) == email_key]
        if username_key:
            conditions.append(func.lower(Account.username) == username_key)
        result = await self.db.execute(select(Account).where(or_(*conditions)))
        matches = result.scalars().all()
        if not matches:
            return None

        by_email = next((a for a in matches if a.email.lower() == email_key), None)
        by_username = next(
            (a for a in matches if username_key and a.username.lower() == username_key), None
        )

        if by_email is None:
            raise DuplicateError("username", username, message=f"Username {username} is already taken")
        if intended_role != AccountRole.PARENT or by_email.role != AccountRole.PARENT.value:
            raise DuplicateError(
                "email",
                email_key,
                message=f"{by_email.role.capitalize()} email {email_key} already exists",
            )
        if by_username is not None and by_username.id != by_email.id:
            raise DuplicateError("username", username, message=f"Username {username} is already taken")
        return by_email


def duplicate_from_integrity_error(exc: IntegrityError) -> DuplicateError:
    """Translate a unique-index violation (race lost to a concurrent batch) into a DuplicateError."""
    detail = str(getattr(exc, "orig", exc)).lower()
    if "username" in detail:
        return DuplicateError("username", message="Username already exists")
    if "email" in detail:
        return DuplicateError("email", message="Email already exists")
    return DuplicateError("identity", message="Email or username already exists")
