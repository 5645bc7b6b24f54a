from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from research_engine.api.routes import research
from research_engine.config import settings
from research_engine.services import database as db
from research_engine.services.logger import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    if db.db_available():
        await db.apply_migrations()
    yield
    # Shutdown
    await db.close_pool()


app = FastAPI(
    title="Deep Research Engine",
    description="Recursive web and retrieval-index research with long-form reports",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(research.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "deep-research-engine"}
