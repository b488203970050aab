# healthmate/deps.py
import json
from typing import Optional, Tuple, Type

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile

from . import config, database, models
from .errors import Unauthorized, Forbidden, ValidationError, field_name
from .gemini import GeminiService
from .mailer import Mailer

bearer = HTTPBearer(auto_error=False)

PROFILE_IMAGE_FIELD = "profileImg"
FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(database.get_db),
) -> models.User:
    if not creds:
        raise Unauthorized("Access token required")
    token = creds.credentials
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise Unauthorized("Invalid or expired token")
    # always reload: role and existence come from the store, never the token
    user = db.get(models.User, user_id)
    if not user:
        raise Unauthorized("Invalid token: user not found")
    return user


def get_current_admin(current: models.User = Depends(get_current_user)) -> models.User:
    if not current.is_admin:
        raise Forbidden("Admin access required")
    return current


def get_ai(request: Request) -> GeminiService:
    return request.app.state.ai


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def form_or_json(schema: Type[BaseModel]):
    """
    Dependency that reads `schema` from either a JSON body or form fields.

    Multipart requests may also carry a `profileImg` file, returned alongside
    the parsed payload as `(payload, image)`; image is None otherwise.
    """

    async def read_body(request: Request) -> Tuple[BaseModel, Optional[UploadFile]]:
        image = None
        if request.headers.get("content-type", "").lower().startswith(FORM_TYPES):
            form = await request.form()
            data = {}
            for key, value in form.items():
                if isinstance(value, StarletteUploadFile):
                    if key == PROFILE_IMAGE_FIELD and value.filename:
                        image = value
                else:
                    data[key] = value
        else:
            raw = await request.body()
            try:
                data = json.loads(raw) if raw else {}
            except ValueError:
                raise ValidationError("Invalid JSON body")
            if not isinstance(data, dict):
                raise ValidationError("Invalid request body")

        try:
            payload = schema.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid value for {field_name(e.errors()[0].get('loc', ()))}")
        return payload, image

    return read_body
