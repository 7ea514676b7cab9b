from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .database import engine, Base
from .routers import projects

logger = logging.getLogger("buildquote")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="BuildQuote",
    description="Building cost quoting with planner scene reconciliation",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(projects.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "buildquote"}


@app.on_event("startup")
def log_startup():
    logger.info("BuildQuote API started")
