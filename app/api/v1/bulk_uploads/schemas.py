from typing import Any, List, Optional

from pydantic import BaseModel, Field


class AccountRef(BaseModel):
    id: str
    email: str
    username: str
    role: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")

    class Config:
        populate_by_name = True


class RowErrorItem(BaseModel):
    row: int
    data: Any = None  # original entry or row, passwords masked
    error: str


class BulkUploadData(BaseModel):
    success: List[AccountRef] = Field(default_factory=list)
    errors: List[RowErrorItem] = Field(default_factory=list)
    parents_created: int = Field(0, alias="parentsCreated")
    students_created: int = Field(0, alias="studentsCreated")
    tutors_created: int = Field(0, alias="tutorsCreated")
    error_report_url: Optional[str] = Field(None, alias="errorReportUrl")

    class Config:
        populate_by_name = True


class BulkUploadResponse(BaseModel):
    success: bool
    message: str
    data: BulkUploadData


class ReconcileData(BaseModel):
    parents_repaired: int = Field(..., alias="parentsRepaired")

    class Config:
        populate_by_name = True


class ReconcileResponse(BaseModel):
    success: bool
    message: str
    data: ReconcileData
