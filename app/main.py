# app/main.py
import sys
import asyncio

# Event loop compatible en Windows (psycopg async lo necesita)
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from contextlib import asynccontextmanager
import json
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import HttpError
from app.core.logging import setup_logging
from app.api.v1.router import api_router
from app.db.session import engine
from app.db.base import Base

setup_logging(settings.LOG_LEVEL, "json" if settings.LOG_FORMAT == "json" else "plain")
logger = logging.getLogger(__name__)


def _normalize_origins(value) -> list[str]:
    """Acepta lista, string JSON o CSV y devuelve la lista de orígenes."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(o).strip() for o in value if str(o).strip()]
    if isinstance(value, str):
        try:
            as_json = json.loads(value)
        except ValueError:
            as_json = None
        if isinstance(as_json, (list, tuple)):
            return [str(o).strip() for o in as_json if str(o).strip()]
        return [o.strip() for o in value.split(",") if o.strip()]
    return [str(value).strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """En desarrollo crea las tablas al arrancar; en prod las maneja la migración."""
    if (settings.ENVIRONMENT or "").lower().strip() == "dev":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    yield


# --- App ---
app = FastAPI(title="Tutorías Backend", lifespan=lifespan)

# --- CORS (antes de los routers) ---
origins = _normalize_origins(settings.CORS_ORIGINS) or [settings.FRONTEND_URL]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,      # lista explícita: el JWT viaja en cookie
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Errores: siempre {"message": str} ---
@app.exception_handler(HttpError)
async def http_error_handler(request: Request, exc: HttpError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Datos de entrada inválidos")
    return JSONResponse(status_code=400, content={"message": f"{field}: {msg}" if field else msg})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("error no controlado en %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Error interno del servidor"})


# Healthcheck simple
@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


# --- API v1 (después del CORS) ---
app.include_router(api_router, prefix=settings.API_V1_PREFIX)
