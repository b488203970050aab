# healthmate/otp.py
"""
Password-reset codes.

One row per email. Issuing a code overwrites that row, so a newer request
always supersedes older codes. Rows older than OTP_EXPIRE_MINUTES are unusable
and are deleted by the next operation that touches the table.
"""
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config, models
from .utils import utcnow


def _cutoff() -> datetime:
    return utcnow() - timedelta(minutes=config.OTP_EXPIRE_MINUTES)


def generate_code() -> str:
    return str(1000 + secrets.randbelow(9000))


def purge_expired(db: Session) -> None:
    (
        db.query(models.PasswordResetOTP)
        .filter(models.PasswordResetOTP.created_at < _cutoff())
        .delete(synchronize_session=False)
    )


def issue(db: Session, email: str) -> str:
    purge_expired(db)
    code = generate_code()
    now = utcnow()
    record = db.query(models.PasswordResetOTP).filter(models.PasswordResetOTP.email == email).first()
    if record:
        record.otp = code
        record.verified = False
        record.created_at = now
    else:
        db.add(models.PasswordResetOTP(email=email, otp=code, verified=False, created_at=now))
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request inserted the row first; take it over
        db.rollback()
        (
            db.query(models.PasswordResetOTP)
            .filter(models.PasswordResetOTP.email == email)
            .update({"otp": code, "verified": False, "created_at": now}, synchronize_session=False)
        )
        db.commit()
    return code


def verify(db: Session, email: str, code: str) -> bool:
    purge_expired(db)
    record = (
        db.query(models.PasswordResetOTP)
        .filter(
            models.PasswordResetOTP.email == email,
            models.PasswordResetOTP.otp == code,
            models.PasswordResetOTP.created_at >= _cutoff(),
        )
        .first()
    )
    if not record:
        db.commit()
        return False
    record.verified = True
    db.commit()
    return True


def has_verified(db: Session, email: str) -> bool:
    return (
        db.query(models.PasswordResetOTP)
        .filter(
            models.PasswordResetOTP.email == email,
            models.PasswordResetOTP.verified.is_(True),
            models.PasswordResetOTP.created_at >= _cutoff(),
        )
        .first()
        is not None
    )


def consume(db: Session, email: str) -> None:
    db.query(models.PasswordResetOTP).filter(models.PasswordResetOTP.email == email).delete(
        synchronize_session=False
    )
