from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .authn import authenticate, bearer_token, default_gate
from .db import get_db
from .errors import InvalidCredentials
from .schemas import LoginIn, LoginOut

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    try:
        result = authenticate(db, payload.email, payload.password)
    except InvalidCredentials as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return LoginOut(
        token=result.token,
        name=result.user.name,
        email=result.user.email,
        role=result.user.role.label,
    )


@router.post("/validate", response_model=bool)
def validate(authorization: Optional[str] = Header(default=None)) -> bool:
    token = bearer_token(authorization) or (authorization or "").strip()
    if not token:
        return False
    return default_gate.validate(token)
