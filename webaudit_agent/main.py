from __future__ import annotations

import os
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from dotenv import load_dotenv

# Load .env before importing modules that read their settings at import time.
_HERE = Path(__file__).resolve()
load_dotenv(_HERE.parents[1] / ".env", override=False)

from .analyzer import analyze  # noqa: E402
from .logger import get_logger  # noqa: E402
from .models import AnalyzeRequest, AnalyzeResponse, DeleteResponse, StoredAnalysis  # noqa: E402
from .storage import (  # noqa: E402
    DEFAULT_CAPACITY,
    AnalysisStore,
    InMemoryAnalysisStore,
    JsonFileAnalysisStore,
    seed_demo_data,
)

logger = get_logger(__name__)


def _build_store() -> AnalysisStore:
    capacity = max(1, int(os.getenv("WEBAUDIT_STORE_CAPACITY", str(DEFAULT_CAPACITY))))
    path = os.getenv("WEBAUDIT_STORE_PATH", "").strip()
    store: AnalysisStore = JsonFileAnalysisStore(path, capacity) if path else InMemoryAnalysisStore(capacity)

    if os.getenv("WEBAUDIT_SEED_DEMO", "1").strip().lower() in ("1", "true", "yes"):
        added = seed_demo_data(store)
        if added:
            logger.info("Seeded %s demo analyses", added)
    return store


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("WEBAUDIT_CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:3000"]
    return [o.strip() for o in raw.split(",") if o.strip()]


app = FastAPI(title="WebAudit Agent", version="0.1.0")
app.state.store = _build_store()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _store() -> AnalysisStore:
    return app.state.store


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post("/analyze", response_model=AnalyzeResponse)
def analyze_endpoint(req: AnalyzeRequest):
    try:
        result = analyze(req)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    analysis_id = _store().save(result.url, result)
    return AnalyzeResponse(id=analysis_id, result=result)


@app.get("/analyses", response_model=list[StoredAnalysis])
def list_analyses(limit: int = Query(10, ge=1)):
    store = _store()
    # A store never holds more than its capacity, so larger limits are clamped.
    return store.list_recent(min(limit, store.capacity))


@app.get("/analyses/{analysis_id}", response_model=StoredAnalysis)
def get_analysis(analysis_id: str):
    record = _store().get(analysis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return record


@app.delete("/analyses/{analysis_id}", response_model=DeleteResponse)
def delete_analysis(analysis_id: str):
    if not _store().delete(analysis_id):
        raise HTTPException(status_code=404, detail="Analysis not found")
    return DeleteResponse(deleted=True)
