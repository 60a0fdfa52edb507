from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from pedidos_express.core.database import get_db
from pedidos_express.deps import get_auth_user
from pedidos_express.models.user import User
from pedidos_express.services.sessions import clear_session_cookie, create_session_token, set_session_cookie
from pedidos_express.services.tenant_resolver import TenantResolver

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserRead(BaseModel):
    id: str
    tenant_id: str | None
    username: str
    name: str
    role: str
    is_master: bool


def _user_read(user: User) -> UserRead:
    return UserRead(
        id=user.id,
        tenant_id=user.tenant_id,
        username=user.username,
        name=user.name or "",
        role=user.role or "",
        is_master=user.tenant_id is None,
    )


@router.post("/login", response_model=UserRead)
def login(payload: LoginPayload, response: Response, db: Session = Depends(get_db)):
    user = TenantResolver.verify_credentials(db, payload.username.strip(), payload.password)
    if not user:
        logger.warning("Login falhou username=%s", payload.username.strip())
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário ou senha inválidos")

    token = create_session_token(user.id, user.tenant_id)
    set_session_cookie(response, token)
    logger.info("Login ok user=%s tenant=%s", user.id, user.tenant_id)
    return _user_read(user)


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/me", response_model=UserRead)
def me(user: User = Depends(get_auth_user)):
    return _user_read(user)
