from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from db.database import get_store
from models.role import Role
from repositories.base import RecordStore
from schemas.auth import Token, UserDisplay
from services.security import (
    create_access_token,
    get_current_user,
    get_user_by_email,
    verify_password,
)


router = APIRouter(tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/auth/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    store: RecordStore = Depends(get_store),
) -> Token:
    username = (form_data.username or "").strip()
    user = await get_user_by_email(store, username)
    if not user:
        logger.warning("auth.login_user_not_found", extra={"email": username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")

    if not verify_password(form_data.password, user.hashed_password):
        logger.warning("auth.login_invalid_password", extra={"email": username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")

    access_token = create_access_token({"email": user.email})
    logger.info("auth.login_success", extra={"email": user.email})
    return Token(access_token=access_token)


@router.get("/users/me", response_model=UserDisplay)
async def read_users_me(current_user: Role = Depends(get_current_user)) -> UserDisplay:
    return UserDisplay(
        user_id=str(current_user.id),
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        resource_id=current_user.resource_id,
    )
