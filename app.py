"""HTTP surface: CSV upload to citation workbook, progress stream, chat."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import AsyncIterator

from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from chat import ConversationStore
from llm_client import chat_completion
from pipeline import decode_csv_bytes, read_records, run_pipeline
from progress import DEFAULT_RUN_ID, ProgressRegistry, format_sse
from workbook_sink import XLSX_MEDIA_TYPE, workbook_bytes

PROGRESS_KEEPALIVE_SECONDS = float(os.getenv("PROGRESS_KEEPALIVE_SECONDS", "15"))
SESSION_COOKIE = "citation_session"
WORKBOOK_FILENAME = "citations_data.xlsx"

LOGGER = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: str
    content: str


class ConversationRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)


class ConversationResponse(BaseModel):
    response: str


class HealthResponse(BaseModel):
    ok: bool = True


app = FastAPI(
    title="citation-pipeline",
    description="APA-7 citations for Dublin-Core CSV exports",
    version="0.1.0",
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

progress_registry = ProgressRegistry()
conversations = ConversationStore()


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()


@app.post("/api/generate-excel")
async def generate_excel(
    file: UploadFile | None = File(None),
    run_id: str = Query(DEFAULT_RUN_ID),
):
    if file is None or file.content_type != "text/csv":
        raise HTTPException(status_code=400, detail="No se ha subido ningún archivo o el archivo no es un CSV")

    raw = await file.read()
    try:
        records = read_records(decode_csv_bytes(raw))
        with progress_registry.publishing(run_id) as channel:
            results = await run_in_threadpool(run_pipeline, records, on_progress=channel.publish)
        content = await run_in_threadpool(workbook_bytes, results)
    except Exception as exc:
        LOGGER.exception("Workbook generation failed for run_id=%s: %s", run_id, exc)
        raise HTTPException(status_code=500, detail="Error generating Excel file") from exc

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{WORKBOOK_FILENAME}"'},
    )


async def progress_stream(request: Request, run_id: str) -> AsyncIterator[str]:
    """Yield SSE messages for ``run_id`` until the client goes away."""
    channel = progress_registry.channel(run_id)
    subscription = channel.subscribe()
    LOGGER.info("Progress observer connected run_id=%s", run_id)
    try:
        while True:
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=PROGRESS_KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    break
                yield ": keep-alive\n\n"
                continue
            yield format_sse(event)
    finally:
        channel.unsubscribe(subscription)
        progress_registry.release(run_id)
        LOGGER.info("Progress observer disconnected run_id=%s", run_id)


def _progress_response(request: Request, run_id: str) -> StreamingResponse:
    return StreamingResponse(
        progress_stream(request, run_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/progress")
async def progress(request: Request, run_id: str = Query(DEFAULT_RUN_ID)):
    return _progress_response(request, run_id)


@app.get("/api/progress/{run_id}")
async def progress_for_run(request: Request, run_id: str):
    return _progress_response(request, run_id)


@app.post("/api/conversation", response_model=ConversationResponse)
def conversation(body: ConversationRequest, request: Request, response: Response):
    session_id = request.cookies.get(SESSION_COOKIE) or uuid.uuid4().hex
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")

    history = conversations.extend(session_id, [m.model_dump() for m in body.messages])
    try:
        reply = chat_completion(history)
    except Exception as exc:
        LOGGER.exception("Chat completion failed for session=%s: %s", session_id, exc)
        raise HTTPException(status_code=500, detail="Error interno del servidor") from exc

    conversations.record_reply(session_id, reply)
    return {"response": reply}
