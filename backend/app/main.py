"""
Sash Pricing API
FastAPI service for order cost/price calculation, the coefficient reference
table and printable order documents.
"""
import os
import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from app.api import coefficient_routes, pricing_routes  # noqa: E402
from app.api.deps import get_coefficient_table  # noqa: E402
from app.services.logging_config import setup_logging  # noqa: E402
from app.services.middleware import RequestTimingMiddleware  # noqa: E402

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("sash-api")

_PROCESS_START = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    table = get_coefficient_table()
    logger.info(f"Coefficient table ready: {len(table.available_systems())} systems")
    yield


app = FastAPI(
    title="Sash Pricing API",
    version="1.0.0",
    description="Cost and sale price calculation for made-to-order window coverings",
    lifespan=lifespan,
)

_cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)

app.include_router(coefficient_routes.router)
app.include_router(pricing_routes.router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "uptime_s": round(time.monotonic() - _PROCESS_START, 1),
    }
