from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from core.config import settings
from core.errors import PermissionDeniedError
from db.database import get_store
from models.appointment import Appointment
from models.role import Role, StaffRole
from repositories.base import RecordStore
from repositories.collections import ROLES


password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
logger = logging.getLogger(__name__)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return password_context.hash(password)


def create_access_token(subject: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


async def get_user_by_email(store: RecordStore, email: str) -> Optional[Role]:
    # Emails are stored lower-cased so lookups are case-insensitive
    doc = await store.find_one(ROLES, {"email": str(email).strip().lower()})
    if not doc:
        logger.warning("auth.user_not_found", extra={"email": email})
        return None
    return Role.model_validate(doc)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    store: RecordStore = Depends(get_store),
) -> Role:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        email: str | None = payload.get("email")
        if email is None:
            logger.error("auth.token_missing_email")
            raise credentials_exception
    except JWTError:
        logger.exception("auth.jwt_error")
        raise credentials_exception

    user = await get_user_by_email(store, email)
    if user is None:
        logger.error("auth.user_not_found_for_token", extra={"email": email})
        raise credentials_exception
    return user


def _is_role(actor: Optional[Role], *roles: StaffRole) -> bool:
    return actor is not None and actor.role in {r.value for r in roles}


def can_manage_requests(actor: Optional[Role]) -> bool:
    """Public requests are promoted or cancelled by front-desk staff only."""
    return _is_role(actor, StaffRole.admin, StaffRole.assistant)


def can_mutate_appointment(actor: Optional[Role], appointment: Appointment) -> bool:
    """
    Admins and assistants may change any appointment. A veterinarian may
    change unassigned appointments and those on their own resource.
    """
    if _is_role(actor, StaffRole.admin, StaffRole.assistant):
        return True
    if _is_role(actor, StaffRole.veterinarian):
        if not actor.resource_id:
            return False
        return appointment.resource_id in (None, actor.resource_id)
    return False


def require_appointment_rights(actor: Optional[Role], appointment: Appointment) -> None:
    if not can_mutate_appointment(actor, appointment):
        logger.warning(
            "auth.appointment_mutation_denied",
            extra={"actor": getattr(actor, "email", None), "appointment_id": appointment.id},
        )
        raise PermissionDeniedError(
            "You are not allowed to change this appointment.",
            details={"appointment_id": appointment.id},
        )


def require_request_rights(actor: Optional[Role]) -> None:
    if not can_manage_requests(actor):
        raise PermissionDeniedError("You are not allowed to manage appointment requests.")


def _normalize_email(email: str) -> str:
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValueError(f"Invalid email: {email!r}") from exc


async def create_staff_user_if_missing(
    store: RecordStore,
    name: str,
    email: str,
    role: str,
    password: str,
    resource_id: Optional[str] = None,
) -> Role:
    email = _normalize_email(email)
    if role not in {r.value for r in StaffRole}:
        raise ValueError(f"Unknown role: {role!r}")
    existing = await store.find_one(ROLES, {"email": email})
    if existing:
        return Role.model_validate(existing)
    doc = {
        "name": name,
        "email": email,
        "role": role,
        "hashed_password": get_password_hash(password),
        "resource_id": resource_id,
    }
    inserted_id = await store.insert_one(ROLES, doc)
    doc.update({"id": inserted_id})
    return Role.model_validate(doc)
