"""
HTTP transport for the membership service.

Thin FastAPI layer: parses requests, calls `AccountService`, maps its errors to
JSON responses and wires session tokens into cookies.
"""

from __future__ import annotations

import logging
import os
import time
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from membership.auth.config import AuthConfig, load_auth_config, mask_secret
from membership.auth.errors import AccountError
from membership.auth.google import GoogleIdentityProvider
from membership.auth.models import Credentials
from membership.auth.passwords import PasswordHasher
from membership.auth.session import SessionManager, clear_session_cookie_kwargs, session_cookie_kwargs
from membership.auth.workflow import AccountService
from membership.storage.base import AccountStore
from membership.storage.config import DbConfig, build_postgres_dsn, load_db_config
from membership.storage.memory_store import MemoryAccountStore
from membership.storage.pg_store import PostgresAccountStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Membership service")


class CredentialsRequest(BaseModel):
    username: str = ""
    password: str = ""

    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)


def build_store(db_cfg: DbConfig) -> AccountStore:
    dsn = build_postgres_dsn(db_cfg)
    if not dsn:
        logger.warning("Postgres not configured; using in-memory account store (data is lost on restart)")
        return MemoryAccountStore()
    return PostgresAccountStore(dsn)


def build_service(cfg: AuthConfig, store: AccountStore) -> AccountService:
    identity_provider = GoogleIdentityProvider(cfg.oauth) if cfg.oauth is not None else None
    return AccountService(
        store,
        PasswordHasher(rounds=cfg.bcrypt_rounds),
        SessionManager.from_config(cfg),
        oauth=cfg.oauth,
        identity_provider=identity_provider,
    )


@lru_cache(maxsize=1)
def get_service() -> AccountService:
    return build_service(load_auth_config(), build_store(load_db_config()))


def get_auth_config() -> AuthConfig:
    return load_auth_config()


def _wants_json(request: Request) -> bool:
    return "application/json" in (request.headers.get("accept") or "").lower()


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s - %s: %s", request.method, request.url.path, exc.kind, exc.message)
    else:
        logger.warning("%s %s - %s", request.method, request.url.path, exc.kind)
    resp = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.on_event("startup")
def _startup_log_config() -> None:
    """
    Log effective config (secrets masked) and optionally apply migrations.

    A missing SESSION_SECRET aborts startup; migration failures only log.
    """
    cfg = load_auth_config()
    if not cfg.session_secret:
        logger.error("SESSION_SECRET is not set; refusing to start")
        raise RuntimeError("Session signing key is not configured (SESSION_SECRET)")
    logger.info(
        "Auth config: oauth_enabled=%s client_id=%s client_secret=%s redirect_url=%s session_ttl=%ds",
        cfg.oauth_enabled,
        cfg.oauth.client_id if cfg.oauth else "",
        mask_secret(cfg.oauth.client_secret) if cfg.oauth else "",
        cfg.oauth.redirect_url if cfg.oauth else "",
        cfg.session_ttl_seconds,
    )

    try:
        from membership.storage.migrate import maybe_auto_migrate

        did_attempt, msg = maybe_auto_migrate()
        if did_attempt:
            logger.info("DB migrations: %s", msg)
    except Exception as e:
        logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/")
def index(cfg: AuthConfig = Depends(get_auth_config)) -> Dict[str, Any]:
    """Public landing info: which signup options are available."""
    result: Dict[str, Any] = {
        "ok": True,
        "oauthEnabled": cfg.oauth_enabled,
        "signupUrl": "/signup",
        "signinUrl": "/signin",
    }
    if cfg.oauth_enabled:
        result["googleLoginUrl"] = "/auth/google/login"
    return result


@app.post("/signup", status_code=201)
def signup(req: CredentialsRequest, service: AccountService = Depends(get_service)) -> Dict[str, Any]:
    creds = req.credentials()
    result = service.signup(creds.username, creds.password)
    return {"message": "User created successfully", "membership_id": result.membership_id}


@app.post("/signin")
def signin(
    request: Request,
    req: CredentialsRequest,
    service: AccountService = Depends(get_service),
    cfg: AuthConfig = Depends(get_auth_config),
):
    creds = req.credentials()
    result = service.signin(creds.username, creds.password)
    if _wants_json(request):
        resp = JSONResponse(content={"ok": True, "user": result.account.to_dict()})
    else:
        # Proceed to the authenticated view.
        resp = RedirectResponse(url="/welcome", status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, result.session_token))
    return resp


@app.get("/users")
def list_users(service: AccountService = Depends(get_service)) -> List[Dict[str, Any]]:
    return [a.to_dict() for a in service.list_accounts()]


@app.get("/auth/google/login")
def google_login(service: AccountService = Depends(get_service)) -> RedirectResponse:
    resp = RedirectResponse(url=service.oauth_login_url(), status_code=307)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.get("/auth/google/callback")
def google_callback(
    state: str = Query(""),
    code: str = Query(""),
    service: AccountService = Depends(get_service),
    cfg: AuthConfig = Depends(get_auth_config),
) -> RedirectResponse:
    result = service.oauth_callback(state, code)
    resp = RedirectResponse(url="/welcome", status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, result.session_token))
    return resp


@app.get("/welcome")
def welcome(
    request: Request,
    service: AccountService = Depends(get_service),
    cfg: AuthConfig = Depends(get_auth_config),
) -> JSONResponse:
    identity = service.sessions.read(request.cookies.get(cfg.session_cookie_name))
    if identity is None:
        return JSONResponse(status_code=401, content={"error": "unauthorized", "detail": "Unauthorized"})
    return JSONResponse(
        content={"ok": True, "username": identity.username, "membership_id": identity.membership_id}
    )


@app.api_route("/logout", methods=["GET", "POST"])
def logout(
    request: Request,
    service: AccountService = Depends(get_service),
    cfg: AuthConfig = Depends(get_auth_config),
) -> RedirectResponse:
    expired: Optional[str] = service.sessions.invalidate(request.cookies.get(cfg.session_cookie_name))
    resp = RedirectResponse(url="/", status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_session_cookie_kwargs(cfg, expired or ""))
    return resp


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting membership server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
