# healthmate/dashboard.py
from typing import Dict, Iterable, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from . import database, models, schemas
from .deps import get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

AVERAGED_FIELDS = ("sugar", "weight", "pulse", "temperature")
RECENT_REPORTS = 5
INSIGHT_LENGTH = 150


def average_vitals(vitals: Iterable[models.Vital]) -> Optional[Dict[str, Optional[float]]]:
    """
    Per-field mean over the non-null readings of each field.

    Every field has its own denominator. Returns None when there are no
    vitals at all; a field with no readings averages to None.
    """
    vitals = list(vitals)
    if not vitals:
        return None
    averages = {}
    for name in AVERAGED_FIELDS:
        values = [getattr(v, name) for v in vitals if getattr(v, name) is not None]
        averages[name] = round(sum(values) / len(values), 2) if values else None
    return averages


@router.get("/stats")
def dashboard_stats(
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    reports = db.query(models.Report).filter(models.Report.user_id == current.id)
    vitals = db.query(models.Vital).filter(models.Vital.user_id == current.id)

    latest_vital = vitals.order_by(models.Vital.date.desc(), models.Vital.id.desc()).first()
    recent_reports = reports.order_by(models.Report.date.desc(), models.Report.id.desc()).limit(RECENT_REPORTS).all()
    all_vitals = vitals.all()

    ai_insights = None
    if recent_reports and recent_reports[0].ai_summary:
        ai_insights = recent_reports[0].ai_summary[:INSIGHT_LENGTH] + "..."

    last_report = db.query(func.max(models.Report.updated_at)).filter(models.Report.user_id == current.id).scalar()
    last_vital = db.query(func.max(models.Vital.updated_at)).filter(models.Vital.user_id == current.id).scalar()
    stamps = [t for t in (last_report, last_vital) if t is not None]

    return schemas.envelope(
        "Dashboard statistics retrieved successfully",
        {
            "totalReports": reports.count(),
            "vitalsCount": len(all_vitals),
            "latestVital": schemas.dump(schemas.VitalOut, latest_vital) if latest_vital else None,
            "recentReports": schemas.dump_all(schemas.ReportTimelineOut, recent_reports),
            "averageVitals": average_vitals(all_vitals),
            "aiInsights": ai_insights,
            "lastUpdated": max(stamps) if stamps else None,
        },
    )
