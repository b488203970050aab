# healthmate/auth.py
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from jose import jwt
from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from . import config, database, models, otp, schemas, storage
from .deps import form_or_json, get_mailer
from .errors import ValidationError, Conflict, Unauthorized, Forbidden, NotFound
from .mailer import Mailer
from .utils import is_valid_email, normalize_email, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

INVALID_CREDENTIALS = "Invalid credentials"
RESET_REQUESTED = "If the email exists, an OTP has been sent"


def create_access_token(sub: str) -> str:
    expire = utcnow() + timedelta(days=config.JWT_EXPIRE_DAYS)
    payload = {"sub": sub, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.verify(password, hashed)
    except ValueError:
        return False


def check_password_length(password: str) -> None:
    if len(password) < config.PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters long")


async def create_user(
    db: Session,
    payload: schemas.SignupIn,
    is_admin: bool,
    image: Optional[UploadFile] = None,
) -> models.User:
    """
    Validate and persist a new account. Used by both signups and admin user creation.

    An optional profile image is stored before the insert and removed again
    if the insert fails.
    """
    first = (payload.first_name or "").strip()
    last = (payload.last_name or "").strip()
    if not payload.email or not first or not last or not payload.password:
        raise ValidationError("Please provide all required fields")
    if not is_valid_email(payload.email.strip()):
        raise ValidationError("Please provide a valid email address")
    check_password_length(payload.password)

    email = normalize_email(payload.email)
    if db.query(models.User).filter(models.User.email == email).first():
        raise Conflict("User with this email already exists")

    profile_img = None
    if image is not None:
        profile_img = await storage.save_upload(image, "profiles", config.MAX_PROFILE_IMAGE_BYTES, "profile")

    user = models.User(
        email=email,
        first_name=first,
        last_name=last,
        phone_number=(payload.phone_number or "").strip() or None,
        password_hash=hash_password(payload.password),
        profile_img=profile_img,
        is_admin=is_admin,
    )
    db.add(user)
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.remove_file(profile_img)
        raise
    db.refresh(user)
    return user


def _authenticate(db: Session, payload: schemas.LoginIn) -> models.User:
    if not payload.email or not payload.password:
        raise ValidationError("Please provide email and password")
    if not is_valid_email(payload.email.strip()):
        raise ValidationError("Please provide a valid email address")
    user = db.query(models.User).filter(models.User.email == normalize_email(payload.email)).first()
    # same answer for unknown email and wrong password
    if not user or not verify_password(payload.password, user.password_hash):
        raise Unauthorized(INVALID_CREDENTIALS)
    return user


def _token_response(message: str, user: models.User) -> dict:
    return schemas.envelope(
        message,
        schemas.dump(schemas.UserOut, user),
        token=create_access_token(str(user.id)),
    )


@router.post("/admin/signup", status_code=status.HTTP_201_CREATED)
async def admin_signup(
    body=Depends(form_or_json(schemas.SignupIn)),
    db: Session = Depends(database.get_db),
):
    payload, image = body
    admin = await create_user(db, payload, is_admin=True, image=image)
    return _token_response("Admin created successfully", admin)


@router.post("/user/signup", status_code=status.HTTP_201_CREATED)
async def user_signup(
    body=Depends(form_or_json(schemas.SignupIn)),
    db: Session = Depends(database.get_db),
):
    payload, image = body
    user = await create_user(db, payload, is_admin=False, image=image)
    return _token_response("User created successfully", user)


@router.post("/admin/login")
def admin_login(payload: schemas.LoginIn, db: Session = Depends(database.get_db)):
    user = _authenticate(db, payload)
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return _token_response("Admin logged in successfully", user)


@router.post("/user/login")
def user_login(payload: schemas.LoginIn, db: Session = Depends(database.get_db)):
    user = _authenticate(db, payload)
    return _token_response("User logged in successfully", user)


@router.post("/user/forgot-password")
async def forgot_password(
    payload: schemas.ForgotPasswordIn,
    db: Session = Depends(database.get_db),
    mailer: Mailer = Depends(get_mailer),
):
    if not payload.email:
        raise ValidationError("Email is required")
    if not is_valid_email(payload.email.strip()):
        raise ValidationError("Please provide a valid email address")

    email = normalize_email(payload.email)
    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        code = otp.issue(db, email)
        try:
            await run_in_threadpool(mailer.send_otp, email, code, config.OTP_EXPIRE_MINUTES)
        except Exception as e:
            logger.error(f"Failed to send password reset OTP to {email}: {e}")
    return schemas.envelope(RESET_REQUESTED)


@router.post("/user/verify-otp")
def verify_otp(payload: schemas.VerifyOTPIn, db: Session = Depends(database.get_db)):
    if not payload.email or not payload.otp:
        raise ValidationError("Email and OTP are required")
    if not otp.verify(db, normalize_email(payload.email), str(payload.otp).strip()):
        raise ValidationError("Invalid or expired OTP")
    return schemas.envelope("OTP verified successfully")


@router.post("/user/reset-password")
def reset_password(payload: schemas.ResetPasswordIn, db: Session = Depends(database.get_db)):
    if not payload.email or not payload.new_password:
        raise ValidationError("Email and newPassword are required")
    check_password_length(payload.new_password)

    email = normalize_email(payload.email)
    user = db.query(models.User).filter(models.User.email == email).first()
    if not user:
        raise NotFound("User not found")
    if not otp.has_verified(db, email):
        raise ValidationError("OTP verification required")

    user.password_hash = hash_password(payload.new_password)
    user.updated_at = utcnow()
    otp.consume(db, email)
    db.commit()
    return schemas.envelope("Password reset successfully")
