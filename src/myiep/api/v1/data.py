"""
Data API Endpoints

Student detail view and backup file export/import.
"""
# ruff: noqa: B008 - FastAPI Depends in function defaults is standard pattern

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from myiep.api.deps import get_tracker
from myiep.core.clock import date_stamp, now_ms
from myiep.core.errors import InvalidFormatError, NotFoundError
from myiep.core.schemas import ImportResult, StudentDetailSchema
from myiep.tracker import Tracker

router = APIRouter()


@router.get("/students/{student_id}", response_model=StudentDetailSchema)
async def get_student_detail(
    student_id: str, tracker: Tracker = Depends(get_tracker)
) -> StudentDetailSchema:
    """Student with goals and logs (newest first). Orphaned records are omitted."""
    try:
        detail = await tracker.student_detail(student_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return StudentDetailSchema(student=detail.student, goals=detail.goals, logs=detail.logs)


@router.get("/export")
async def export_data(tracker: Tracker = Depends(get_tracker)) -> Response:
    """Download all structured data as a backup file."""
    payload = await tracker.export_data()
    filename = f"my-iep-backup-{date_stamp(now_ms())}.json"
    return Response(
        content=payload,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=ImportResult)
async def import_data(request: Request, tracker: Tracker = Depends(get_tracker)) -> ImportResult:
    """Replace local data with an uploaded backup file (raw JSON body)."""
    try:
        snapshot = await tracker.import_data(await request.body())
    except InvalidFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return ImportResult(
        students=len(snapshot.students or []),
        goals=len(snapshot.goals or []),
        logs=len(snapshot.logs or []),
        assessments=len(snapshot.assessments or []),
    )
