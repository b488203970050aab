# healthmate/users.py
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from . import config, database, models, schemas, storage
from .auth import create_user
from .deps import form_or_json, get_current_user, get_current_admin
from .errors import ValidationError, Conflict, NotFound
from .utils import is_valid_email, normalize_email, utcnow

router = APIRouter(tags=["users"])


def _apply_profile_update(db: Session, user: models.User, payload: schemas.ProfileUpdateIn) -> None:
    if payload.first_name and payload.first_name.strip():
        user.first_name = payload.first_name.strip()
    if payload.last_name and payload.last_name.strip():
        user.last_name = payload.last_name.strip()
    if "phone_number" in payload.model_fields_set:
        user.phone_number = (payload.phone_number or "").strip() or None

    if payload.email and normalize_email(payload.email) != user.email:
        if not is_valid_email(payload.email.strip()):
            raise ValidationError("Please provide a valid email address")
        email = normalize_email(payload.email)
        if db.query(models.User).filter(models.User.email == email).first():
            raise Conflict("Email already exists")
        user.email = email
    user.updated_at = utcnow()


async def _commit_with_image(db: Session, user: models.User, image: Optional[UploadFile]) -> None:
    """Commit pending changes to user, swapping in a new profile image when one is given."""
    url = old = None
    if image is not None:
        url = await storage.save_upload(image, "profiles", config.MAX_PROFILE_IMAGE_BYTES, "profile")
        old = user.profile_img
        user.profile_img = url
        user.updated_at = utcnow()
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.remove_file(url)
        raise
    db.refresh(user)
    storage.remove_file(old)


async def _replace_profile_image(db: Session, user: models.User, image: Optional[UploadFile]) -> None:
    if not image or not image.filename:
        raise ValidationError("Please provide a profile image")
    await _commit_with_image(db, user, image)


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


# ---- Own profile

@router.get("/user/profile")
def get_own_profile(current: models.User = Depends(get_current_user)):
    return schemas.envelope("Profile retrieved successfully", schemas.dump(schemas.UserOut, current))


@router.put("/user/profile")
def update_own_profile(
    payload: schemas.ProfileUpdateIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    _apply_profile_update(db, current, payload)
    db.commit()
    db.refresh(current)
    return schemas.envelope("Profile updated successfully", schemas.dump(schemas.UserOut, current))


@router.patch("/user/profile-image")
async def update_own_profile_image(
    profile_img: Optional[UploadFile] = File(default=None, alias="profileImg"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    await _replace_profile_image(db, current, profile_img)
    return schemas.envelope("Profile image updated successfully", schemas.dump(schemas.UserOut, current))


# ---- Admin user management

@router.get("/admin/users")
def list_users(
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    rows = (
        db.query(models.User)
        .filter(models.User.id != current.id)
        .order_by(models.User.created_at.desc())
        .all()
    )
    return schemas.envelope(
        "Users retrieved successfully",
        schemas.dump_all(schemas.UserOut, rows),
        count=len(rows),
    )


@router.get("/admin/user/{user_id}")
def get_user(
    user_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    user = _get_user(db, user_id)
    return schemas.envelope("User retrieved successfully", schemas.dump(schemas.UserOut, user))


@router.post("/admin/user", status_code=status.HTTP_201_CREATED)
async def add_user(
    body=Depends(form_or_json(schemas.AdminUserIn)),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    payload, image = body
    user = await create_user(db, payload, is_admin=payload.is_admin, image=image)
    return schemas.envelope("User added successfully", schemas.dump(schemas.UserOut, user))


@router.put("/admin/user/{user_id}")
async def update_user(
    user_id: int,
    body=Depends(form_or_json(schemas.AdminUserUpdateIn)),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    payload, image = body
    user = _get_user(db, user_id)
    _apply_profile_update(db, user, payload)
    if payload.is_admin is not None:
        user.is_admin = payload.is_admin
    await _commit_with_image(db, user, image)
    return schemas.envelope("User updated successfully", schemas.dump(schemas.UserOut, user))


@router.patch("/admin/user/{user_id}/profile-image")
async def update_user_profile_image(
    user_id: int,
    profile_img: Optional[UploadFile] = File(default=None, alias="profileImg"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    user = _get_user(db, user_id)
    await _replace_profile_image(db, user, profile_img)
    return schemas.envelope("Profile image updated successfully", schemas.dump(schemas.UserOut, user))


@router.delete("/admin/user/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_admin),
):
    user = _get_user(db, user_id)
    data = schemas.dump(schemas.UserOut, user)
    files = [r.file_url for r in user.reports if r.file_url] + [user.profile_img]
    db.delete(user)
    db.commit()
    for url in files:
        storage.remove_file(url)
    return schemas.envelope("User deleted successfully", data)
