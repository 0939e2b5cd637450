"""
TermScribe history service — HTTP view of a session's command history.

Run inside a recorded shell (so TERMSCRIBE_TRANSCRIPT is set):
    uvicorn app:app --port 8080
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from command_history import (
    HistoryQueryService,
    InvalidArgumentError,
    TranscriptNotFoundError,
    TranscriptReadError,
    Variant,
)
from session_context import ENV_TRANSCRIPT_VAR, SessionContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class CommandBlockModel(BaseModel):
    start_time: int
    command: str
    body: str


class HistoryResponse(BaseModel):
    variant: str
    path: str
    source: str
    fell_back: bool
    total: int
    partial_tail: bool
    message: Optional[str] = None
    blocks: list[CommandBlockModel]


class InfoResponse(BaseModel):
    raw_path: Optional[str] = None
    sanitized_path: Optional[str] = None
    redaction_state: str
    storage_note: str


class EnvResponse(BaseModel):
    name: str
    value: str


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def create_app(context: SessionContext) -> FastAPI:
    api = FastAPI(title="TermScribe History", version="0.1.0")
    service = HistoryQueryService(context)

    @api.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @api.get("/history", response_model=HistoryResponse)
    def history(
        count: str = Query("all", description="Number of most recent commands, or 'all'"),
        variant: Variant = Query(Variant.ORIGINAL, description="original or sanitized"),
    ) -> HistoryResponse:
        try:
            result = service.query(count, variant)
        except InvalidArgumentError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except TranscriptNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except TranscriptReadError as exc:
            raise HTTPException(status_code=500, detail=str(exc))

        return HistoryResponse(
            variant=result.variant.value,
            path=result.path,
            source=result.source,
            fell_back=result.fell_back,
            total=result.total,
            partial_tail=result.partial_tail,
            message=result.message,
            blocks=[
                CommandBlockModel(start_time=b.start_time, command=b.command, body=b.body)
                for b in result.blocks
            ],
        )

    @api.get("/info", response_model=InfoResponse)
    def info() -> InfoResponse:
        return InfoResponse(**context.info())

    @api.get("/env", response_model=EnvResponse)
    def env() -> EnvResponse:
        value = SessionContext.discovery_value()
        if value is None:
            raise HTTPException(status_code=404, detail="No transcript path available")
        return EnvResponse(name=ENV_TRANSCRIPT_VAR, value=value)

    @api.post("/redaction/stop")
    def stop_redaction() -> dict[str, str]:
        # Teardown-style call: failures are never reported to the caller.
        try:
            context.supervisor.stop()
        except Exception as exc:
            logger.debug("Ignoring stop-redaction error: %s", exc, exc_info=True)
        return {"redaction_state": context.redaction_state.value}

    return api


app = create_app(SessionContext.from_environment())
