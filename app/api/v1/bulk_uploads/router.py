import os
import re
from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_bulk_uploader
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import CandidateKind
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .ingest import from_json, from_upload
from .notifications import WelcomeMailer, get_mailer
from .schemas import BulkUploadResponse, ReconcileData, ReconcileResponse
from . import service

router = APIRouter(prefix="/api/v1/bulk-uploads", tags=["bulk-uploads"])

SAFE_FILENAME_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


@router.post(
    "/tutors",
    response_model=BulkUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_tutors(
    payload: Any = Body(..., description='{"data": [...]}, {"entries": [...]} or a list of {user, profile}'),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_bulk_uploader),
    mailer: WelcomeMailer = Depends(get_mailer),
) -> BulkUploadResponse:
    """Create tutors one transaction per entry. Failed entries are reported, the rest are kept."""
    try:
        source = from_json(payload, CandidateKind.TUTOR)
        result = await service.run_batch(db, source, current_user, mailer)
        return service.build_response(result)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/students",
    response_model=BulkUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_parents_students_json(
    payload: Any = Body(..., description='{"data": [...]}, {"entries": [...]} or a list of {parent, student}'),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_bulk_uploader),
    mailer: WelcomeMailer = Depends(get_mailer),
) -> BulkUploadResponse:
    """Create parent/student pairs; an existing parent with the same email and password is reused."""
    try:
        source = from_json(payload, CandidateKind.PARENT_STUDENT_PAIR)
        result = await service.run_batch(db, source, current_user, mailer)
        return service.build_response(result)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/parents-students",
    response_model=BulkUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_parents_students_file(
    file: UploadFile = File(..., description="CSV or Excel (.xlsx) with one parent/student pair per row"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_bulk_uploader),
    mailer: WelcomeMailer = Depends(get_mailer),
) -> BulkUploadResponse:
    """
    Create parent/student pairs from a spreadsheet. Header labels may carry a trailing "*".
    When any row fails, data.errorReportUrl points at a CSV copy of the upload with a
    "Validation Errors" column.
    """
    try:
        content = await file.read()
        source = from_upload(file.filename, content, CandidateKind.PARENT_STUDENT_PAIR)
        result = await service.run_batch(db, source, current_user, mailer)
        return service.build_response(result)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/error-reports/{filename}")
async def download_error_report(
    filename: str,
    current_user: CurrentUser = Depends(require_bulk_uploader),
) -> FileResponse:
    if not SAFE_FILENAME_RE.match(filename):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file name")
    path = os.path.join(settings.error_report_dir, filename)
    if not os.path.isfile(path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Error report not found")
    return FileResponse(path, media_type="text/csv", filename=filename)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_parent_children(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_bulk_uploader),
) -> ReconcileResponse:
    """Repair parents' children lists against the student accounts that exist."""
    try:
        repaired = await service.reconcile_children(db)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ReconcileResponse(
        success=True,
        message=f"Repaired {repaired} parent records",
        data=ReconcileData(parents_repaired=repaired),
    )
