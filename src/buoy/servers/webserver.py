"""Admin HTTP server for buoy (cache inspection and invalidation, health).

This module provides a small FastAPI application and helpers to run it with
uvicorn in a background thread alongside the UDP DNS listener.

All handlers return JSON data structures and are backed by the shared
RecordCache, so the admin view always reflects what the DNS path would read.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from pydantic import BaseModel

from ..cache import RecordCache
from ..errors import StoreError
from ..records import normalize_domain

logger = logging.getLogger("buoy.webserver")


class _Suppress2xxAccessFilter(logging.Filter):
    """Logging filter that drops uvicorn access records for HTTP 2xx responses.

    Records whose status code cannot be determined are kept.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        status_code = getattr(record, "status_code", None)

        if status_code is None:
            args = getattr(record, "args", None)
            if isinstance(args, dict):
                status_code = args.get("status_code") or args.get("status")
            elif isinstance(args, (tuple, list)) and args:
                # uvicorn.access passes the status code as the last positional arg
                status_code = args[-1]

        try:
            code = int(status_code)
        except (TypeError, ValueError):
            return True

        return not (200 <= code <= 299)


def install_uvicorn_2xx_suppression() -> None:
    """Attach _Suppress2xxAccessFilter to the uvicorn.access logger once."""

    access_logger = logging.getLogger("uvicorn.access")
    for f in access_logger.filters:
        if isinstance(f, _Suppress2xxAccessFilter):
            return
    access_logger.addFilter(_Suppress2xxAccessFilter())


class RecordModel(BaseModel):
    """One cached record as returned by GET /api/cache."""

    domain: str
    address: str
    time: str


class DeleteResult(BaseModel):
    domain: str
    deleted: bool


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_basic_auth(header: str) -> tuple[str, str]:
    """Brief: Decode an HTTP Basic Authorization header value.

    Inputs:
      - header: raw Authorization header value, e.g. "Basic YWRtaW46cHc=".

    Outputs:
      - (username, password) tuple.

    Raises:
      - ValueError: the header is not a well-formed Basic credential.

    Example:
      >>> _parse_basic_auth("Basic YWRtaW46cHc=")
      ('admin', 'pw')
    """

    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        raise ValueError("authorization scheme must be Basic")
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError("invalid base64 credentials") from exc
    if ":" not in decoded:
        raise ValueError("credentials must be username:password")
    username, _, password = decoded.partition(":")
    return username, password


def _build_auth_dependency(web_cfg: Dict[str, Any]):
    """Build a FastAPI dependency enforcing HTTP Basic auth.

    Inputs:
      - web_cfg: normalized webserver config with username, password and realm.

    Outputs:
      - Dependency callable usable with FastAPI Depends().

    Responses:
      - 401 with WWW-Authenticate when the header is missing.
      - 400 when the header is malformed.
      - 401 when the credentials do not match.
    """

    expected_user = str(web_cfg.get("username") or "")
    expected_password = str(web_cfg.get("password") or "")
    realm = str(web_cfg.get("realm") or "buoy")
    challenge = {"WWW-Authenticate": f'Basic realm="{realm}"'}

    async def _basic_auth(request: Request) -> None:
        if not expected_user or not expected_password:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="webserver.auth not configured",
            )

        hdr = request.headers.get("authorization")
        if hdr is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="authorization required",
                headers=challenge,
            )

        try:
            username, password = _parse_basic_auth(hdr)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"malformed authorization header: {exc}",
            ) from exc

        user_ok = secrets.compare_digest(
            username.encode("utf-8"), expected_user.encode("utf-8")
        )
        password_ok = secrets.compare_digest(
            password.encode("utf-8"), expected_password.encode("utf-8")
        )
        if not (user_ok and password_ok):
            logger.warning(
                "Rejected admin request for %s from %s",
                request.url.path,
                request.client.host if request.client else "?",
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="unauthorized",
                headers=challenge,
            )

    return _basic_auth


def create_app(cache: RecordCache, web_cfg: Dict[str, Any]) -> FastAPI:
    """Create and configure the FastAPI app exposing buoy admin endpoints.

    Inputs:
      - cache: RecordCache shared with the DNS dispatcher.
      - web_cfg: normalized webserver config (see
        buoy.config.config_parser.normalize_webserver_config).

    Outputs:
      - Configured FastAPI application.

    Example:
      >>> from buoy.stores import InMemoryRecordStore
      >>> app = create_app(RecordCache(InMemoryRecordStore()),
      ...                  {"username": "admin", "password": "pw"})
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        install_uvicorn_2xx_suppression()
        yield

    app = FastAPI(title="buoy admin HTTP API", lifespan=lifespan)
    app.state.cache = cache
    app.state.web_cfg = web_cfg

    auth_dep = _build_auth_dependency(web_cfg)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Return simple liveness information."""

        return {"status": "ok", "server_time": _utc_now_iso()}

    @app.get(
        "/api/cache",
        response_model=List[RecordModel],
        dependencies=[Depends(auth_dep)],
    )
    def list_cache() -> List[Dict[str, str]]:
        """Brief: Return every stored record, stale ones included.

        Outputs:
          - List of {domain, address, time} mappings ordered by domain.
        """

        try:
            records = cache.list_records()
        except StoreError as exc:
            logger.error("Failed to list cache records: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"failed to read cache: {exc}",
            ) from exc
        return [r.to_dict() for r in records]

    @app.delete(
        "/api/cache",
        response_model=DeleteResult,
        dependencies=[Depends(auth_dep)],
    )
    def delete_cache_entry(domain: Optional[str] = Query(None)) -> Dict[str, Any]:
        """Brief: Remove one domain from the cache.

        Inputs:
          - domain: query parameter naming the domain; normalized before use.

        Outputs:
          - {"domain": <normalized>, "deleted": true}; absent domains succeed.
        """

        if domain is None or not domain.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="query parameter 'domain' is required",
            )

        key = normalize_domain(domain)
        try:
            cache.remove_record(key)
        except StoreError as exc:
            logger.error("Failed to delete %s: %s", key, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"failed to delete {key}: {exc}",
            ) from exc
        logger.info("Deleted %s from cache via admin API", key)
        return {"domain": key, "deleted": True}

    return app


class WebServerHandle:
    """Handle for the background admin webserver thread.

    Inputs (constructor):
      - thread: Thread object running the uvicorn server loop.
      - server: Optional uvicorn.Server instance; stop() flags it to exit.

    Outputs:
      - WebServerHandle instance with stop() and is_running().
    """

    def __init__(self, thread: threading.Thread, server: Any | None = None) -> None:
        self._thread = thread
        self._server = server

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait up to timeout seconds for the thread."""

        if self._server is not None:
            self._server.should_exit = True
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Admin webserver did not stop within %.1fs", timeout)


def start_webserver(
    cache: RecordCache, web_cfg: Optional[Dict[str, Any]]
) -> Optional[WebServerHandle]:
    """Start the admin HTTP server with uvicorn in a background thread.

    Inputs:
      - cache: RecordCache shared with the DNS dispatcher.
      - web_cfg: normalized webserver config, or None when disabled.

    Outputs:
      - WebServerHandle when enabled; otherwise None.

    Example:
      >>> handle = start_webserver(cache, {"host": "127.0.0.1", "port": 8053,
      ...                                  "username": "admin", "password": "pw"})  # doctest: +SKIP
      >>> handle.stop()  # doctest: +SKIP
    """

    if not web_cfg:
        return None

    import uvicorn

    host = str(web_cfg.get("host", "127.0.0.1"))
    port = int(web_cfg.get("port", 8053))

    app = create_app(cache, web_cfg)
    # log_config=None keeps uvicorn on the handlers init_logging installed.
    config_uvicorn = uvicorn.Config(
        app, host=host, port=port, log_level="info", log_config=None
    )
    server = uvicorn.Server(config_uvicorn)

    def _runner() -> None:
        try:
            server.run()
        except Exception:  # pragma: no cover - environment specific
            logger.exception("Unhandled exception in webserver thread")

    thread = threading.Thread(target=_runner, name="buoy-webserver", daemon=True)
    thread.start()

    logger.info("Started buoy webserver on %s:%d", host, port)
    return WebServerHandle(thread, server=server)
