from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserDisplay(BaseModel):
    user_id: str
    name: str
    email: EmailStr
    role: str
    resource_id: Optional[str] = None
