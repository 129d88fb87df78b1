import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import AccountRole, CandidateKind
from app.core.exceptions import ReconciliationError

from .enroller import RowOutcome, TransactionalEnroller
from .error_report import MASKED, ErrorReportBuilder
from .ingest import BatchSource
from .notifications import WelcomeMailer
from .reconciler import ConsistencyReconciler
from .schemas import AccountRef, BulkUploadData, BulkUploadResponse, RowErrorItem


logger = logging.getLogger(__name__)

ERROR_REPORT_PATH = "/api/v1/bulk-uploads/error-reports"


@dataclass
class BatchResult:
    kind: CandidateKind
    outcomes: List[RowOutcome] = field(default_factory=list)
    error_report: Optional[str] = None  # file name under ERROR_REPORT_DIR

    @property
    def committed(self) -> List[RowOutcome]:
        return [o for o in self.outcomes if o.committed]

    @property
    def failed(self) -> List[RowOutcome]:
        return [o for o in self.outcomes if o.error is not None]

    def created(self, role: AccountRole) -> int:
        return sum(o.count(role) for o in self.outcomes)


async def reconcile_children(db: AsyncSession) -> int:
    """Run the consistency sweep; a failure here must stop the batch before any row is touched."""
    try:
        return await ConsistencyReconciler(db).reconcile()
    except SQLAlchemyError as e:
        logger.exception("Reconciliation failed")
        await db.rollback()
        raise ReconciliationError() from e


async def run_batch(
    db: AsyncSession,
    source: BatchSource,
    current_user: CurrentUser,
    mailer: Optional[WelcomeMailer] = None,
) -> BatchResult:
    """Reconcile, then enroll every record of ``source`` in order, one transaction per record."""
    await reconcile_children(db)

    enroller = TransactionalEnroller(db, current_user.center_id, mailer=mailer)
    report = ErrorReportBuilder(source.headers)
    result = BatchResult(kind=source.kind)
    for record in source:
        row_index = report.add_row(record.cells)
        outcome = await enroller.enroll(record)
        if outcome.error is not None:
            report.add_error(row_index, outcome.error.message)
        result.outcomes.append(outcome)

    if report.has_errors:
        result.error_report = report.save(settings.error_report_dir)
    logger.info(
        "Batch by %s finished: %s rows, %s committed, %s failed",
        current_user.id,
        len(result.outcomes),
        len(result.committed),
        len(result.failed),
    )
    return result


def mask_secrets(data: Any) -> Any:
    """Copy of an entry with every password value replaced."""
    if isinstance(data, dict):
        return {
            k: (MASKED if "password" in str(k).lower() and v else mask_secrets(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [mask_secrets(v) for v in data]
    return data


def build_response(result: BatchResult) -> BulkUploadResponse:
    accounts = [
        AccountRef(
            id=a.id,
            email=a.email,
            username=a.username,
            role=a.role,
            first_name=a.first_name,
            last_name=a.last_name,
        )
        for o in result.committed
        for a in o.accounts
    ]
    errors = [
        RowErrorItem(row=o.record.index, data=mask_secrets(o.record.raw_row), error=o.error.message)
        for o in result.failed
    ]
    data = BulkUploadData(
        success=accounts,
        errors=errors,
        parents_created=result.created(AccountRole.PARENT),
        students_created=result.created(AccountRole.STUDENT),
        tutors_created=result.created(AccountRole.TUTOR),
        error_report_url=f"{ERROR_REPORT_PATH}/{result.error_report}" if result.error_report else None,
    )
    if result.kind == CandidateKind.TUTOR:
        message = f"Successfully created {data.tutors_created} tutors with {len(errors)} errors"
    else:
        message = (
            f"Successfully created {data.parents_created} parents and "
            f"{data.students_created} students with {len(errors)} errors"
        )
    return BulkUploadResponse(success=True, message=message, data=data)
