import logging
import math
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Cookie, Depends, FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
import psycopg2.extras
from pydantic import BaseModel
from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.hash import bcrypt

from backend import app_context
from backend.app.routes.billing import router as billing_router
from backend.app.services.billing import get_billing_config
from backend.expiry_sweeper import (
    get_sweep_metrics,
    shutdown_expiry_sweeper,
    start_expiry_sweeper,
)


load_dotenv()

logger = logging.getLogger("invoice_api")


def _connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "invoices_db"),
    user=os.getenv("DB_USER", "invoice_user"),
    password=os.getenv("DB_PASSWORD", "invoice_pass"),
    connect_timeout=_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
SESSION_TTL = timedelta(minutes=int(os.getenv("JWT_EXP_MINUTES", str(60 * 24 * 7))))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "0").lower() in {"1", "true", "yes"}

_USER_COLUMNS = "id, username, email, role, created_utc"


def get_conn():
    return psycopg2.connect(**DB_CFG)


class SessionUser(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    role: str = "user"
    created_utc: datetime


class LoginRequest(BaseModel):
    username: str
    password: str


def issue_session_token(user_id: int, *, ttl: Optional[timedelta] = None) -> str:
    expires_at = datetime.now(timezone.utc) + (SESSION_TTL if ttl is None else ttl)
    return jwt.encode({"sub": str(user_id), "exp": expires_at}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def load_user(user_id: int) -> Optional[SessionUser]:
    with get_conn() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s", (user_id,))
        row = cur.fetchone()
    return SessionUser(**row) if row else None


def find_login_user(identifier: str) -> Optional[Dict[str, Any]]:
    """Match a username or an email address, case-insensitively."""

    lookup = identifier.strip()
    with get_conn() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {_USER_COLUMNS}, password_hash
            FROM users
            WHERE LOWER(username) = LOWER(%s) OR LOWER(email) = LOWER(%s)
            ORDER BY (LOWER(username) = LOWER(%s)) DESC
            LIMIT 1
            """,
            (lookup, lookup, lookup),
        )
        row = cur.fetchone()
    return dict(row) if row else None


def user_from_session_token(session_token: str) -> Optional[SessionUser]:
    try:
        claims = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        user_id = int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None
    return load_user(user_id)


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> SessionUser:
    user = user_from_session_token(session_token) if session_token else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


app_context.configure(get_conn=get_conn, get_current_user=get_current_user)

app = FastAPI(title="Invoice Billing API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_billing_config().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing_router)


@app.on_event("startup")
def _start_expiry_sweeper() -> None:
    start_expiry_sweeper()


@app.on_event("shutdown")
def _shutdown_expiry_sweeper() -> None:
    shutdown_expiry_sweeper()


@app.post("/api/auth/login", response_model=SessionUser)
def login(payload: LoginRequest, response: Response):
    row = find_login_user(payload.username)
    if not row or not bcrypt.verify(payload.password, row.pop("password_hash")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    user = SessionUser(**row)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=issue_session_token(user.id),
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
        max_age=int(SESSION_TTL.total_seconds()),
        path="/",
    )
    logger.info("User %s logged in", user.id)
    return user


@app.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/", httponly=True, samesite="lax", secure=SESSION_COOKIE_SECURE)
    return {"ok": True}


@app.get("/api/auth/me", response_model=SessionUser)
def read_current_user(current_user: SessionUser = Depends(get_current_user)):
    return current_user


@app.get("/api/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/metrics/expiry-sweep")
def read_expiry_sweep_metrics() -> Dict[str, Any]:
    return get_sweep_metrics()
