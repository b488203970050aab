# healthmate/vitals.py
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from . import database, models, schemas
from .deps import get_current_user
from .errors import ValidationError, NotFound
from .utils import parse_date

router = APIRouter(prefix="/vitals", tags=["vitals"])

MEASUREMENTS = ("bp", "sugar", "weight", "pulse", "temperature", "notes")


def _owned_vital(db: Session, vital_id: int, user_id: int) -> models.Vital:
    vital = (
        db.query(models.Vital)
        .filter(models.Vital.id == vital_id, models.Vital.user_id == user_id)
        .first()
    )
    if not vital:
        raise NotFound("Vital entry not found")
    return vital


def _parse(raw: Optional[str]):
    value = parse_date(raw)
    if value is None:
        raise ValidationError("Invalid date format")
    return value


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@router.post("", status_code=status.HTTP_201_CREATED)
def add_vital(
    payload: schemas.VitalIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    if not payload.date:
        raise ValidationError("Please provide date")
    vital = models.Vital(
        user_id=current.id,
        date=_parse(payload.date),
        bp=_clean_text(payload.bp),
        sugar=payload.sugar,
        weight=payload.weight,
        pulse=payload.pulse,
        temperature=payload.temperature,
        notes=_clean_text(payload.notes),
    )
    db.add(vital)
    db.commit()
    db.refresh(vital)
    return schemas.envelope("Vital entry added successfully", schemas.dump(schemas.VitalOut, vital))


@router.get("")
def list_vitals(
    date: Optional[str] = None,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    q = db.query(models.Vital).filter(models.Vital.user_id == current.id)
    if date:
        start = _parse(date).replace(hour=0, minute=0, second=0, microsecond=0)
        q = q.filter(models.Vital.date >= start, models.Vital.date < start + timedelta(days=1))
    rows = q.order_by(models.Vital.date.desc(), models.Vital.id.desc()).all()
    return schemas.envelope(
        "Vitals retrieved successfully",
        schemas.dump_all(schemas.VitalOut, rows),
        count=len(rows),
    )


@router.get("/timeline")
def vitals_timeline(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    q = db.query(models.Vital).filter(models.Vital.user_id == current.id)
    if start_date:
        q = q.filter(models.Vital.date >= _parse(start_date))
    if end_date:
        q = q.filter(models.Vital.date <= _parse(end_date))
    rows = q.order_by(models.Vital.date.desc(), models.Vital.id.desc()).all()
    return schemas.envelope(
        "Vitals timeline retrieved successfully",
        schemas.dump_all(schemas.VitalOut, rows),
        count=len(rows),
    )


@router.get("/{vital_id}")
def get_vital(
    vital_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    vital = _owned_vital(db, vital_id, current.id)
    return schemas.envelope("Vital entry retrieved successfully", schemas.dump(schemas.VitalOut, vital))


@router.put("/{vital_id}")
def update_vital(
    vital_id: int,
    payload: schemas.VitalIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    vital = _owned_vital(db, vital_id, current.id)
    fields = payload.model_fields_set
    if "date" in fields:
        vital.date = _parse(payload.date)
    for name in MEASUREMENTS:
        if name in fields:
            value = getattr(payload, name)
            if name in ("bp", "notes"):
                value = _clean_text(value)
            setattr(vital, name, value)
    db.commit()
    db.refresh(vital)
    return schemas.envelope("Vital entry updated successfully", schemas.dump(schemas.VitalOut, vital))


@router.delete("/{vital_id}")
def delete_vital(
    vital_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    vital = _owned_vital(db, vital_id, current.id)
    db.delete(vital)
    db.commit()
    return schemas.envelope("Vital entry deleted successfully")
