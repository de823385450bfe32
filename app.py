import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates

import rate_limit_service
import record_store
from routes_api import create_api_router
from routes_dashboard import create_dashboard_router
from settings_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(_: FastAPI):
    configure_logging()
    initialize_sqlite()
    yield


app = FastAPI(lifespan=app_lifespan)
DB_PATH = os.environ.get('CELL_DASHBOARD_DB_PATH', '/data/cells.db')
BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / 'templates'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').strip().upper() or 'INFO'
ACTIVITY_WINDOW_DAYS = max(1, int(os.environ.get('ACTIVITY_WINDOW_DAYS', '30')))
RECENT_REPORT_WINDOW_DAYS = max(1, int(os.environ.get('RECENT_REPORT_WINDOW_DAYS', '7')))
STALE_SESSION_HOURS = max(1, int(os.environ.get('STALE_SESSION_HOURS', '24')))
DEFAULT_BODY_LIMIT_BYTES = 256 * 1024
REPORT_BODY_LIMIT_BYTES = 512 * 1024
IMPORT_BODY_LIMIT_BYTES = 4 * 1024 * 1024
RATE_LIMIT_ENABLED = os.environ.get('RATE_LIMIT_ENABLED', '1').strip().lower() not in {
    '0', 'false', 'no', 'off',
}
RATE_LIMIT_WINDOW_SECONDS = max(1, int(os.environ.get('RATE_LIMIT_WINDOW_SECONDS', '60')))
RATE_LIMIT_DEFAULT_PER_MINUTE = max(1, int(os.environ.get('RATE_LIMIT_DEFAULT_PER_MINUTE', '60')))
RATE_LIMIT_HEAVY_PER_MINUTE = max(1, int(os.environ.get('RATE_LIMIT_HEAVY_PER_MINUTE', '10')))
_RATE_LIMITER = rate_limit_service.SlidingWindowLimiter(RATE_LIMIT_WINDOW_SECONDS)
SECURITY_HEADERS = {
    'Content-Security-Policy': (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "object-src 'none'; frame-ancestors 'none'"
    ),
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'X-Frame-Options': 'DENY',
}


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def _body_too_large(limit: int) -> str:
    return f'Request body too large. Limit for this endpoint is {limit} bytes.'


def _declared_length_exceeds(request: Request, limit: int) -> bool:
    content_length = request.headers.get('content-length', '').strip()
    return content_length.isdigit() and int(content_length) > limit


async def _enforce_request_size(request: Request, limit: int) -> None:
    if limit <= 0:
        return
    if _declared_length_exceeds(request, limit) or len(await request.body()) > limit:
        raise HTTPException(status_code=413, detail=_body_too_large(limit))


@app.middleware('http')
async def guard_writes_and_set_headers(request: Request, call_next):
    body_limit = rate_limit_service.request_body_limit_bytes_core(
        request.method,
        request.url.path,
        IMPORT_BODY_LIMIT_BYTES,
        REPORT_BODY_LIMIT_BYTES,
        DEFAULT_BODY_LIMIT_BYTES,
    )
    if body_limit > 0 and _declared_length_exceeds(request, body_limit):
        return JSONResponse(status_code=413, content={'detail': _body_too_large(body_limit)})

    limited, retry_after, rate_limit = rate_limit_service.check_rate_limit_core(
        request,
        limiter=_RATE_LIMITER,
        enabled=RATE_LIMIT_ENABLED,
        heavy_per_minute=RATE_LIMIT_HEAVY_PER_MINUTE,
        default_per_minute=RATE_LIMIT_DEFAULT_PER_MINUTE,
    )
    if limited:
        logger.warning('rate limit hit for %s %s', request.method, request.url.path)
        return JSONResponse(
            status_code=429,
            content={'detail': f'Rate limit exceeded for write requests. Try again in {retry_after} seconds.'},
            headers={'Retry-After': str(retry_after), 'X-RateLimit-Limit': str(rate_limit)},
        )

    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


def _prepare_db_path(path_value: str) -> str:
    db_parent = str(Path(path_value).resolve().parent)
    os.makedirs(db_parent, exist_ok=True)
    return path_value


def _resolve_startup_db_path() -> str:
    try:
        return _prepare_db_path(DB_PATH)
    except PermissionError:
        fallback = str(BASE_DIR / 'cells.db')
        logger.warning('cannot create %s, falling back to %s', DB_PATH, fallback)
        return _prepare_db_path(fallback)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def settings_store() -> SqliteKeyValueStore:
    return SqliteKeyValueStore(DB_PATH)


def initialize_sqlite() -> None:
    global DB_PATH
    DB_PATH = _resolve_startup_db_path()
    record_store.initialize_schema(DB_PATH)
    settings_store().ensure_table()
    logger.info('database ready at %s', DB_PATH)


_ROUTE_DEPS: dict[str, object] = {
    'db_path': lambda: DB_PATH,
    'utc_now': lambda: utc_now(),
    'utc_now_iso': lambda: utc_now_iso(),
    'settings_store': lambda: settings_store(),
    'templates': templates,
    'enforce_request_size': _enforce_request_size,
    'default_body_limit_bytes': DEFAULT_BODY_LIMIT_BYTES,
    'report_body_limit_bytes': REPORT_BODY_LIMIT_BYTES,
    'import_body_limit_bytes': IMPORT_BODY_LIMIT_BYTES,
    'activity_window_days': ACTIVITY_WINDOW_DAYS,
    'recent_report_window_days': RECENT_REPORT_WINDOW_DAYS,
    'stale_session_hours': STALE_SESSION_HOURS,
}

app.include_router(create_api_router(deps=_ROUTE_DEPS))
app.include_router(create_dashboard_router(deps=_ROUTE_DEPS))
