# healthmate/reports.py
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from . import config, database, models, schemas, storage
from .deps import get_current_user, get_ai
from .errors import ValidationError, NotFound
from .gemini import GeminiService
from .utils import parse_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])

AI_PENDING = "AI analysis pending. Please try again later."


def _check_type(report_type: Optional[str]) -> str:
    if report_type not in models.REPORT_TYPES:
        raise ValidationError(f"Invalid report type. Must be one of: {', '.join(models.REPORT_TYPES)}")
    return report_type


def _require_date(raw: Optional[str]) -> datetime:
    value = parse_date(raw)
    if value is None:
        raise ValidationError("Invalid date format")
    return value


def _apply_analysis(report: models.Report, analysis: Dict[str, Any]) -> None:
    report.ai_summary = analysis["summary"]
    report.abnormalities = analysis["abnormalities"]
    report.doctor_questions = analysis["doctorQuestions"]


async def _analyze(report: models.Report, func, *args) -> None:
    """Run an AI call; failures leave the report with a pending summary."""
    try:
        analysis = await run_in_threadpool(func, *args)
        _apply_analysis(report, analysis)
    except Exception as e:
        logger.warning(f"AI analysis failed for {report.report_type} report: {e}")
        report.ai_summary = AI_PENDING


def _owned_report(db: Session, report_id: int, user_id: int) -> models.Report:
    report = (
        db.query(models.Report)
        .filter(models.Report.id == report_id, models.Report.user_id == user_id)
        .first()
    )
    if not report:
        raise NotFound("Report not found")
    return report


def _day_bounds(raw: str):
    day = parse_date(raw)
    if day is None:
        raise ValidationError("Invalid date format")
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_report(
    report_type: Optional[str] = Form(default=None, alias="reportType"),
    date: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
    ai: GeminiService = Depends(get_ai),
):
    if not report_type or not date:
        raise ValidationError("Please provide reportType and date")
    if not file or not file.filename:
        raise ValidationError("Please upload a file")
    _check_type(report_type)
    report_date = _require_date(date)

    file_url = await storage.save_upload(file, "reports", config.MAX_REPORT_BYTES, "report")
    try:
        report = models.Report(
            user_id=current.id,
            report_type=report_type,
            date=report_date,
            file_url=file_url,
        )
        await _analyze(report, ai.analyze_file, storage.path_for(file_url), report_type)
        db.add(report)
        db.commit()
        db.refresh(report)
    except Exception:
        db.rollback()
        storage.remove_file(file_url)
        raise

    return schemas.envelope("Report uploaded and processed successfully", schemas.dump(schemas.ReportOut, report))


@router.post("/manual", status_code=status.HTTP_201_CREATED)
async def create_manual_report(
    payload: schemas.ManualReportIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
    ai: GeminiService = Depends(get_ai),
):
    if not payload.report_type or not payload.date:
        raise ValidationError("Please provide reportType and date")
    if not isinstance(payload.manual_data, dict) or not payload.manual_data:
        raise ValidationError("Please provide manualData as an object")
    _check_type(payload.report_type)

    report = models.Report(
        user_id=current.id,
        report_type=payload.report_type,
        date=_require_date(payload.date),
        manual_data=payload.manual_data,
    )
    await _analyze(report, ai.analyze_data, payload.manual_data, payload.report_type)
    db.add(report)
    db.commit()
    db.refresh(report)
    return schemas.envelope("Manual report created successfully", schemas.dump(schemas.ReportOut, report))


@router.get("")
def list_reports(
    date: Optional[str] = None,
    report_type: Optional[str] = Query(default=None, alias="reportType"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    q = db.query(models.Report).filter(models.Report.user_id == current.id)
    if date:
        start, end = _day_bounds(date)
        q = q.filter(models.Report.date >= start, models.Report.date < end)
    if report_type:
        q = q.filter(models.Report.report_type == report_type)
    rows = q.order_by(models.Report.date.desc(), models.Report.id.desc()).all()
    return schemas.envelope(
        "Reports retrieved successfully",
        schemas.dump_all(schemas.ReportOut, rows),
        count=len(rows),
    )


@router.get("/timeline")
def reports_timeline(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    q = db.query(models.Report).filter(models.Report.user_id == current.id)
    if start_date:
        q = q.filter(models.Report.date >= _require_date(start_date))
    if end_date:
        q = q.filter(models.Report.date <= _require_date(end_date))
    rows = q.order_by(models.Report.date.desc(), models.Report.id.desc()).all()
    return schemas.envelope(
        "Reports timeline retrieved successfully",
        schemas.dump_all(schemas.ReportTimelineOut, rows),
        count=len(rows),
    )


@router.get("/{report_id}")
def get_report(
    report_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    r = _owned_report(db, report_id, current.id)
    return schemas.envelope("Report retrieved successfully", schemas.dump(schemas.ReportOut, r))


@router.get("/{report_id}/download")
def download_report(
    report_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    r = _owned_report(db, report_id, current.id)
    if not r.file_url:
        raise ValidationError("No file available for this report")
    path = storage.path_for(r.file_url)
    if not os.path.exists(path):
        raise NotFound("File not found")
    return FileResponse(path, filename=os.path.basename(path))


@router.put("/{report_id}")
def update_report(
    report_id: int,
    payload: schemas.ReportUpdateIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    r = _owned_report(db, report_id, current.id)
    fields = payload.model_fields_set
    if "report_type" in fields:
        r.report_type = _check_type(payload.report_type)
    if "date" in fields:
        r.date = _require_date(payload.date)
    if "manual_data" in fields:
        r.manual_data = payload.manual_data
    db.commit()
    db.refresh(r)
    return schemas.envelope("Report updated successfully", schemas.dump(schemas.ReportOut, r))


@router.delete("/{report_id}")
def delete_report(
    report_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    r = _owned_report(db, report_id, current.id)
    file_url = r.file_url
    db.delete(r)
    db.commit()
    storage.remove_file(file_url)
    return schemas.envelope("Report deleted successfully")
