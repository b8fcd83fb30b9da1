"""
FastAPI application for the boutique sales trainer.
Runs persona generation, the simulated-customer dialogue and scoring.
"""

import os
import logging
from typing import List, Optional

from dotenv import load_dotenv, find_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field
import httpx

# Load .env before the components read their module-level settings
load_dotenv(find_dotenv(usecwd=True))

from .components.database import Database
from .components.errors import (
    ConfigValidationError,
    InvalidSessionStateError,
    LLMRequestError,
    NoSpeechError,
    SessionNotFoundError,
)
from .components.llm import LLM
from .components.orchestrator import Orchestrator
from .components.report_export import render_report_html
from .components.reports import build_ability_report, session_history
from .components.session_manager import SessionManager
from .components.stt_client import STTClient

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

REPORT_SESSION_LIMIT = int(os.getenv("REPORT_SESSION_LIMIT", "20"))

app = FastAPI(
    title="Boutique Sales Trainer",
    description="Luxury retail sales training against an AI-simulated customer",
    version="0.1.0",
)

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize components
llm = LLM()
session_manager = SessionManager()
database = Database()
stt = STTClient()
orchestrator = Orchestrator(llm, session_manager=session_manager, database=database, stt=stt)


@app.on_event("startup")
async def startup():
    """Initialize services on startup"""
    logger.info(f"Starting services (LLM provider: {llm.provider}, model: {llm.model_name})...")
    if not llm.api_key_set:
        logger.warning("LLM_API_KEY not set. Completion requests will fail.")

    try:
        await database.initialize()
    except Exception as e:
        # sessions still run; results come back with persist_error
        logger.error(f"Database unavailable, sessions will not be persisted: {str(e)}")
    logger.info("Backend services initialized")


@app.on_event("shutdown")
async def shutdown():
    """Cleanup on shutdown"""
    await database.close()
    await stt.close()


def to_http_error(e: Exception) -> HTTPException:
    """Map component errors onto HTTP status codes."""
    if isinstance(e, ConfigValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "missing": e.missing, "invalid": e.invalid})
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidSessionStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NoSpeechError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, LLMRequestError):
        return HTTPException(status_code=502, detail=f"Completion request failed: {str(e)}")
    if isinstance(e, httpx.HTTPError):
        return HTTPException(status_code=502, detail=f"Speech-to-text request failed: {str(e)}")
    logger.error(f"Unhandled error: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


# Request models
class StartSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    persona: Optional[str] = None      # code or UI label, e.g. "HNWI" / "高净值顾客"
    scenario: Optional[str] = None     # e.g. "FIRST_CONTACT" / "首次触达"
    difficulty: Optional[str] = None   # e.g. "BASIC" / "基础"
    brand: Optional[str] = None
    product_line: Optional[str] = Field(default=None, alias="productLine")
    knowledge_base_ids: Optional[List[str]] = Field(default=None, alias="knowledgeBaseIds")
    scoring_model: Optional[str] = Field(default=None, alias="scoringModel")
    user_id: Optional[str] = Field(default=None, alias="userId")
    chapter_id: Optional[str] = Field(default=None, alias="chapterId")


class MessageRequest(BaseModel):
    text: str


class AudioRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_base64: str = Field(alias="audioBase64")


def _require_database():
    if not database.initialized:
        raise HTTPException(status_code=503, detail="Database not initialized")


@app.get("/")
async def root():
    return {"message": "Boutique Sales Trainer Backend", "status": "running"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "llm": {
            "provider": llm.provider,
            "model": llm.model_name,
            "api_key_set": llm.api_key_set,
        },
        "stt": {
            "service_url": stt.service_url,
            "type": "http_client",
        },
        "database": {
            "initialized": database.initialized,
        },
        "active_sessions": len(session_manager.list_sessions()),
    }


@app.post("/api/sessions")
async def start_session(request: StartSessionRequest):
    """Start a new training session"""
    logger.info(f"Starting training session (persona={request.persona}, scenario={request.scenario}, brand={request.brand})")
    try:
        return await orchestrator.start_session(
            {
                "persona": request.persona,
                "scenario": request.scenario,
                "difficulty": request.difficulty,
                "brand": request.brand,
                "product_line": request.product_line,
                "knowledge_base_ids": request.knowledge_base_ids,
                "scoring_model": request.scoring_model,
            },
            user_id=request.user_id,
            chapter_id=request.chapter_id,
        )
    except Exception as e:
        raise to_http_error(e)


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    try:
        return orchestrator.get_session(session_id)
    except Exception as e:
        raise to_http_error(e)


@app.delete("/api/sessions/{session_id}")
async def discard_session(session_id: str):
    """Reset: drop the session without scoring it"""
    if not orchestrator.discard_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"session_id": session_id, "discarded": True}


@app.post("/api/sessions/{session_id}/messages")
async def send_message(session_id: str, request: MessageRequest):
    """Send one salesperson turn, get the customer's reply"""
    try:
        return await orchestrator.send_message(session_id, request.text)
    except Exception as e:
        raise to_http_error(e)


@app.post("/api/sessions/{session_id}/voice")
async def send_voice(session_id: str, request: AudioRequest):
    """Send one salesperson turn as recorded audio"""
    try:
        return await orchestrator.transcribe_and_send(session_id, request.audio_base64)
    except Exception as e:
        raise to_http_error(e)


@app.post("/api/sessions/{session_id}/end")
async def end_session(session_id: str):
    """End the session manually and score it"""
    logger.info(f"Ending training session {session_id}")
    try:
        return await orchestrator.end_session(session_id)
    except Exception as e:
        raise to_http_error(e)


@app.post("/api/transcribe")
async def transcribe(request: AudioRequest):
    """Proxy to the speech-to-text service"""
    try:
        return {"text": await stt.transcribe(request.audio_base64)}
    except Exception as e:
        raise to_http_error(e)


@app.get("/api/users/{user_id}/sessions")
async def list_user_sessions(user_id: str, limit: int = 50):
    """Training history, newest first, with score change per session"""
    _require_database()
    try:
        records = await database.list_sessions(user_id, limit=limit)
    except Exception as e:
        raise to_http_error(e)
    return {"user_id": user_id, "sessions": session_history(records)}


@app.get("/api/records/{record_id}")
async def get_record(record_id: int):
    """One persisted session with its transcript and scores"""
    _require_database()
    record = await database.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Record {record_id} not found")
    evaluation = record.evaluation()
    return {
        **record.summary(),
        "user_id": record.user_id,
        "chapter_id": record.chapter_id,
        "messages": [m.model_dump() for m in record.messages],
        "evaluation": evaluation.model_dump(by_alias=True) if evaluation else None,
    }


async def _user_report(user_id: str):
    _require_database()
    try:
        records = await database.list_sessions(user_id, limit=REPORT_SESSION_LIMIT, scored_only=True)
    except Exception as e:
        raise to_http_error(e)
    return build_ability_report(records)


@app.get("/api/users/{user_id}/report")
async def user_report(user_id: str):
    """Ability report over the most recent scored sessions"""
    report = await _user_report(user_id)
    return {"user_id": user_id, **report}


@app.get("/api/users/{user_id}/report.html", response_class=HTMLResponse)
async def user_report_html(user_id: str):
    """Ability report as a standalone HTML page"""
    report = await _user_report(user_id)
    return HTMLResponse(render_report_html(report, user_id=user_id))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))
