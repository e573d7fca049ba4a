import sqlite3
import time

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from backend.config import COOKIE_SAMESITE, COOKIE_SECURE, SESSION_COOKIE_NAME
from backend.logger import get_logger
from backend.security import issue_session_token, require_session
from database.db import create_tables, verify_admin_credentials

router = APIRouter()
log = get_logger("auth")


class AdminLogin(BaseModel):
    username: str
    password: str


@router.post("/auth/login")
def admin_login(payload: AdminLogin, response: Response):
    username = payload.username.strip()
    password = payload.password.strip()

    if not username:
        raise HTTPException(status_code=400, detail="Username is required.")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    try:
        admin = verify_admin_credentials(username, password)
    except sqlite3.OperationalError:
        # Self-heal when DB schema is missing (e.g., startup/lifespan skipped).
        try:
            create_tables()
            admin = verify_admin_credentials(username, password)
        except sqlite3.OperationalError:
            raise HTTPException(
                status_code=503,
                detail="Authentication service unavailable. Please retry.",
            )

    if not admin:
        log.warning("Failed admin login for %r", username)
        raise HTTPException(status_code=401, detail="Invalid admin credentials.")

    token, claims = issue_session_token(admin["username"], role="admin")
    now = int(time.time())
    max_age = max(0, int(claims["exp"]) - now)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        path="/",
    )
    log.info("Admin %s logged in", claims["sub"])
    return {
        "access_token": token,
        "token_type": "bearer",
        "username": claims["sub"],
        "role": claims["role"],
        "expires_at": claims["exp"],
        "expires_in": max_age,
    }


@router.post("/auth/logout")
def admin_logout(response: Response):
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        secure=COOKIE_SECURE,
        httponly=True,
        samesite=COOKIE_SAMESITE,
    )
    return {"ok": True}


@router.get("/auth/me")
def auth_me(session: dict = Depends(require_session)):
    return {
        "username": session.get("sub"),
        "role": session.get("role", "admin"),
        "expires_at": session.get("exp"),
        "issued_at": session.get("iat"),
    }
