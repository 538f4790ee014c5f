"""
Quoter API v1.0
FastAPI backend over async SQLAlchemy: bill-of-materials resolution,
order cost aggregation and margin/tax quote cascade.
"""
import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import LOG_JSON, LOG_LEVEL, MAX_DEPENDENCY_DEPTH
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware

# Load .env in dev (no-op when the file is missing)
load_dotenv()

setup_logging(level=LOG_LEVEL, json_output=LOG_JSON)
logger = logging.getLogger("quoter-api")

if not os.getenv("DATABASE_URL"):
    logger.warning("MISSING env var: DATABASE_URL — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.db import engine, init_db
    await init_db()
    logger.info(f"Quote engine ready (max dependency depth {MAX_DEPENDENCY_DEPTH})")
    yield
    await engine.dispose()


app = FastAPI(
    title="Quoter API",
    version="1.0.0",
    description="BOM resolution and quote costing for make-to-order manufacturing",
    lifespan=lifespan,
)

_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

from app.api.engine_routes import router as engine_router  # noqa: E402

app.include_router(engine_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": "1.0.0",
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "max_dependency_depth": MAX_DEPENDENCY_DEPTH,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
