"""
Pump Advisor: FastAPI Application Layer

Endpoints:
  1. POST /next-action  Decide greet / ask / recommend for a conversation
  2. POST /extract-intent  Structured requirements from chat history
  3. POST /nameplate  Parse OCR text from a pump nameplate
  4. GET  /pumps/{model}  Catalog lookup
  5. POST /evaluate  Batch benchmark submissions
  6. GET  /health  Health check

The service returns decisions, not prose: phrasing the reply is left to
the caller's language model.
"""
from __future__ import annotations
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import Settings, get_settings
from conversation_policy import get_next_action
from evaluation import EvalRow, Submission, run_evaluation
from intent_extractor import latest_user_message
from llm_extractor import LLMIntentExtractor, resolve_intent
from models import (
    Action, CatalogPump, ChatMessage, ConversationState, EngineResult,
    HealthResponse,
)
from nameplate_parser import NameplateReading, parse_nameplate_text
from pump_catalog import PumpCatalog, get_catalog

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
MAX_HISTORY_MESSAGES = 200
MAX_NAMEPLATE_CHARS = 5000


# ============================================================
# Request Models
# ============================================================

class NextActionRequest(BaseModel):
    history: list[ChatMessage] = Field(default_factory=list)
    last_action: Optional[Action] = None
    region: Optional[str] = None


class ExtractIntentRequest(BaseModel):
    history: list[ChatMessage] = Field(default_factory=list)


class NameplateRequest(BaseModel):
    text: str


class EvaluateRequest(BaseModel):
    rows: list[EvalRow] = Field(default_factory=list)
    region: Optional[str] = None


# ============================================================
# Application State (shared singletons)
# ============================================================

class AppState:
    """Holds all shared service instances."""
    settings: Settings
    catalog: PumpCatalog
    extractor: Optional[LLMIntentExtractor]
    start_time: float
    request_count: int = 0

    def __init__(self):
        self.start_time = time.monotonic()
        self.request_count = 0
        self.extractor = None


_state = AppState()


# ============================================================
# Lifespan: Startup / Shutdown
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and the catalog on startup."""
    logger.info("Starting Pump Advisor...")

    settings = get_settings()
    _state.settings = settings
    _state.catalog = get_catalog()

    if settings.llm_configured:
        _state.extractor = LLMIntentExtractor.from_settings(settings)
        logger.info(f"LLM intent extraction enabled: {settings.llm_model}")
    else:
        _state.extractor = None
        logger.info("LLM intent extraction disabled; pattern extraction only")

    logger.info(
        f"System ready. Catalog: {len(_state.catalog)} pumps "
        f"({_state.catalog.brand} {_state.catalog.version}), region {settings.region}")
    yield

    logger.info("Shutting down Pump Advisor...")


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="Pump Advisor API",
    description="Conversational pump selection: requirement extraction, duty-point "
                "sizing, catalog matching and energy ROI.",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Middleware: Request Counting & Timing
# ============================================================

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.monotonic()
    _state.request_count += 1
    response = await call_next(request)
    elapsed = int((time.monotonic() - start) * 1000)
    response.headers["X-Response-Time-Ms"] = str(elapsed)
    return response


# ============================================================
# 1. POST /next-action: Conversation Decision
# ============================================================

@app.post("/next-action", response_model=EngineResult, tags=["Conversation"])
async def next_action(request: NextActionRequest):
    """
    Resolve requirements from the whole history (pattern + optional LLM),
    then apply the policy. Callers send back `last_action` from the
    previous turn so feedback on a recommendation is recognised.
    """
    if len(request.history) > MAX_HISTORY_MESSAGES:
        raise HTTPException(400, f"History too long (max {MAX_HISTORY_MESSAGES} messages)")

    try:
        state = await resolve_intent(request.history, _state.extractor)
        result = get_next_action(
            state,
            latest_message=latest_user_message(request.history),
            last_action=request.last_action,
            catalog=_state.catalog,
            region=request.region,
        )
        logger.info(
            f"[next-action] action={result.action.value} "
            f"fields={sorted(state.known_fields())} pumps={len(result.pumps)}")
        return result
    except Exception as e:
        logger.exception("Next action failed")
        raise HTTPException(500, f"Next action error: {str(e)}")


# ============================================================
# 2. POST /extract-intent: Requirements Only
# ============================================================

@app.post("/extract-intent", response_model=ConversationState, tags=["Conversation"])
async def extract_intent_endpoint(request: ExtractIntentRequest):
    try:
        return await resolve_intent(request.history, _state.extractor)
    except Exception as e:
        logger.exception("Intent extraction failed")
        raise HTTPException(500, f"Extraction error: {str(e)}")


# ============================================================
# 3. POST /nameplate: Nameplate OCR Text
# ============================================================

@app.post("/nameplate", response_model=NameplateReading, tags=["Conversation"])
async def parse_nameplate(request: NameplateRequest):
    if not request.text.strip():
        raise HTTPException(400, "Nameplate text cannot be empty")
    if len(request.text) > MAX_NAMEPLATE_CHARS:
        raise HTTPException(400, f"Nameplate text too long (max {MAX_NAMEPLATE_CHARS} chars)")

    try:
        return parse_nameplate_text(request.text)
    except Exception as e:
        logger.exception("Nameplate parsing failed")
        raise HTTPException(500, f"Nameplate error: {str(e)}")


# ============================================================
# 4. GET /pumps/{model}: Catalog Lookup
# ============================================================

@app.get("/pumps/{model}", response_model=CatalogPump, tags=["Catalog"])
async def get_pump(model: str):
    pump = _state.catalog.get_by_model(model) or _state.catalog.get_by_id(model)
    if pump is None:
        raise HTTPException(404, f"Pump not found: {model}")
    return pump


# ============================================================
# 5. POST /evaluate: Benchmark Submissions
# ============================================================

@app.post("/evaluate", response_model=list[Submission], tags=["Evaluation"])
async def evaluate(request: EvaluateRequest):
    if not request.rows:
        raise HTTPException(400, "At least one row is required")

    try:
        return run_evaluation(request.rows, _state.catalog, request.region)
    except Exception as e:
        logger.exception("Evaluation failed")
        raise HTTPException(500, f"Evaluation error: {str(e)}")


# ============================================================
# 6. GET /health: Health Check
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """System health check."""
    uptime = int(time.monotonic() - _state.start_time)

    components = {
        "catalog": {
            "status": "healthy" if len(_state.catalog) else "empty",
            "pumps": len(_state.catalog),
            "brand": _state.catalog.brand,
            "version": _state.catalog.version,
        },
        "llm_extractor": {
            "status": "enabled" if _state.extractor is not None else "disabled",
        },
        "policy": {"status": "healthy", "region": _state.settings.region},
        "requests": {"status": "healthy", "count": _state.request_count},
    }

    return HealthResponse(
        status="healthy",
        components=components,
        version=APP_VERSION,
        uptime_seconds=uptime,
    )


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        filename=settings.log_file,
    )
    uvicorn.run("api:app", host=settings.host, port=settings.port, reload=settings.reload,
                log_level=settings.log_level.lower())
