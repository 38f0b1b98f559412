"""
PYQ API — Main Application
FastAPI application serving the theme browser and archive search over the
previous-year-question collection kept canonical by organize_pyq_data.py.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from database.database import engine, Base
from routers import pyq


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables if missing."""
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="PYQ Archive API",
    description="Theme-wise browsing and archive search of previous year exam questions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(pyq.router)               # /pyq/themes, /pyq/archive


@app.get("/")
def root():
    return {
        "name": "PYQ Archive API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "themes": "/pyq/themes",
            "archive": "/pyq/archive",
            "health": "/health",
        },
    }


@app.get("/health")
def health():
    return {"status": "healthy"}
