"""
Per-record enrollment: one transaction per tutor record or parent+student pair.

A record walks PENDING -> VALIDATING -> {REJECTED | PARENT_RESOLVED} ->
STUDENT_CREATING -> LINKING -> COMMITTED. Tutor records skip the parent and
linking states. Any failure after validation rolls back that record only and
leaves it ROLLED_BACK with a row error; the enroller never raises for a row.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Account
from app.auth.profiles import with_children
from app.auth.security import verify_password
from app.core.config import settings
from app.core.enums import AccountRole, CandidateKind, RowState
from app.core.exceptions import (
    DuplicateError,
    EnrollmentError,
    FieldValidationError,
    PersistenceError,
)

from .builders import build_parent, build_student, build_tutor
from .dedup import DedupResolver, duplicate_from_integrity_error
from .ingest import CandidateRecord
from .validation import validate

if TYPE_CHECKING:
    from .notifications import WelcomeMailer


logger = logging.getLogger(__name__)


class EnrolledAccount(NamedTuple):
    """Plain snapshot of a committed account; safe to read after later rollbacks expire the ORM row."""

    id: str
    email: str
    username: str
    role: str
    first_name: str
    last_name: str

    @classmethod
    def of(cls, account: Account) -> "EnrolledAccount":
        return cls(
            account.id,
            account.email,
            account.username,
            account.role,
            account.first_name,
            account.last_name,
        )


@dataclass
class RowOutcome:
    record: CandidateRecord
    state: RowState = RowState.PENDING
    error: Optional[EnrollmentError] = None
    accounts: List[EnrolledAccount] = field(default_factory=list)  # created by this row
    parent_created: bool = False

    @property
    def committed(self) -> bool:
        return self.state == RowState.COMMITTED

    def count(self, role: AccountRole) -> int:
        return sum(1 for a in self.accounts if a.role == role.value)


class TransactionalEnroller:
    def __init__(
        self,
        db: AsyncSession,
        center_id: Optional[str],
        mailer: Optional["WelcomeMailer"] = None,
        row_timeout: Optional[float] = None,
    ) -> None:
        self.db = db
        self.center_id = center_id
        self.mailer = mailer
        self.row_timeout = row_timeout if row_timeout is not None else settings.bulk_row_timeout_seconds
        self.dedup = DedupResolver(db)

    async def enroll(self, record: CandidateRecord) -> RowOutcome:
        outcome = RowOutcome(record=record)
        self._transition(outcome, RowState.VALIDATING)

        errors = validate(record)
        if errors:
            outcome.error = FieldValidationError(errors)
            self._transition(outcome, RowState.REJECTED)
            logger.warning("Row %s rejected: %s", record.index, outcome.error.message)
            return outcome

        try:
            if self.row_timeout:
                await asyncio.wait_for(self._write(outcome), timeout=self.row_timeout)
            else:
                await self._write(outcome)
        except EnrollmentError as e:
            await self._abort(outcome, e)
        except asyncio.TimeoutError as e:
            await self._abort(outcome, PersistenceError(e, f"Row timed out after {self.row_timeout} seconds"))
        except SQLAlchemyError as e:
            logger.exception("Database error on row %s", record.index)
            await self._abort(outcome, PersistenceError(e))
        except Exception as e:
            logger.exception("Unexpected error on row %s", record.index)
            await self._abort(outcome, PersistenceError(e))
        else:
            logger.info(
                "Row %s committed: %s",
                record.index,
                ", ".join(f"{a.role} {a.id}" for a in outcome.accounts) or "no new accounts",
            )
            self._welcome(outcome)
        return outcome

    # ----- transaction body -----
    async def _write(self, outcome: RowOutcome) -> None:
        if outcome.record.kind == CandidateKind.TUTOR:
            await self._write_tutor(outcome)
        else:
            await self._write_pair(outcome)
        await self._commit()
        self._transition(outcome, RowState.COMMITTED)

    async def _write_tutor(self, outcome: RowOutcome) -> None:
        values = outcome.record.values
        await self.dedup.resolve(values["email"], values["username"], AccountRole.TUTOR)
        tutor = build_tutor(values, self.center_id)
        self.db.add(tutor)
        await self._flush()
        outcome.accounts.append(EnrolledAccount.of(tutor))

    async def _write_pair(self, outcome: RowOutcome) -> None:
        values = outcome.record.values

        # Student identity first: a taken student email must not leave a fresh parent behind
        await self.dedup.resolve(values["student_email"], values["student_username"], AccountRole.STUDENT)

        parent = await self.dedup.resolve(
            values["parent_email"], values.get("parent_username") or None, AccountRole.PARENT
        )
        if parent is None:
            parent = build_parent(values, self.center_id)
            self.db.add(parent)
            await self._flush()
            outcome.parent_created = True
            outcome.accounts.append(EnrolledAccount.of(parent))
        elif not verify_password(values["parent_password"], parent.password_hash):
            raise DuplicateError(
                "email",
                parent.email,
                message=f"Parent email {parent.email} already exists with different credentials",
            )
        self._transition(outcome, RowState.PARENT_RESOLVED)

        self._transition(outcome, RowState.STUDENT_CREATING)
        student = build_student(values, parent, self.center_id)
        self.db.add(student)
        await self._flush()
        outcome.accounts.append(EnrolledAccount.of(student))

        self._transition(outcome, RowState.LINKING)
        await self._link(parent.id, student.id)

    async def _link(self, parent_id: str, student_id: str) -> None:
        """Append the student to the parent's children, reading the parent fresh inside this transaction."""
        result = await self.db.execute(
            select(Account)
            .where(Account.id == parent_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        parent = result.scalar_one_or_none()
        if parent is None or parent.role != AccountRole.PARENT.value:
            raise EnrollmentError(f"Parent {parent_id} is no longer available")
        children = parent.children_ids
        if student_id not in children:
            parent.profile = with_children(parent.profile, children + [student_id])
            await self._flush()

    # ----- helpers -----
    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise duplicate_from_integrity_error(e) from e

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            raise duplicate_from_integrity_error(e) from e

    async def _abort(self, outcome: RowOutcome, error: EnrollmentError) -> None:
        await self.db.rollback()
        outcome.error = error
        outcome.accounts = []
        outcome.parent_created = False
        self._transition(outcome, RowState.ROLLED_BACK)
        logger.warning("Row %s rolled back: %s", outcome.record.index, error.message)

    def _transition(self, outcome: RowOutcome, state: RowState) -> None:
        logger.debug("Row %s: %s -> %s", outcome.record.index, outcome.state.value, state.value)
        outcome.state = state

    def _welcome(self, outcome: RowOutcome) -> None:
        if self.mailer is None:
            return
        for account in outcome.accounts:
            self.mailer.schedule(account)
