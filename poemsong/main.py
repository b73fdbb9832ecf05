from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from poemsong.logging_utils import (
    clear_request_context,
    configure_logging,
    current_request_id,
    log_event,
    new_request_id,
    request_elapsed_ms,
    set_request_context,
)
from poemsong.models import AnalyzeRequest, AnalyzeResponse, ComposeRequest, Composition, ExportRequest
from poemsong.services.composer import EmptyLyricsError, compose
from poemsong.services.lyrics_analysis import analyze_lyrics
from poemsong.services.musicxml_export import export_musicxml
from poemsong.services.parameters import recommend_genre

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Poem to Song")


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    set_request_context(request_id=request_id, route=request.url.path, method=request.method)
    started = time.perf_counter()
    log_event(logger, "request_started")
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = request_elapsed_ms(started)
        log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms)
        raise

    elapsed_ms = request_elapsed_ms(started)
    log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms)
    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.exception_handler(Exception)
async def global_exception_handler(_request: Request, exc: Exception):
    request_id = current_request_id()
    logger.exception(
        "unhandled_exception",
        extra={"event": "unhandled_exception", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while processing your request. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )
    clear_request_context()
    return response


def _handle_user_error(action: str, exc: Exception, hint: str = "Please adjust inputs and try again.") -> HTTPException:
    log_event(logger, "request_failed", level=logging.WARNING, action=action, reason=str(exc))
    return HTTPException(
        status_code=422,
        detail={
            "message": f"{action} failed. {hint}",
            "request_id": current_request_id(),
        },
    )


@app.post("/api/analyze", response_model=AnalyzeResponse)
def analyze_endpoint(payload: AnalyzeRequest):
    analysis = analyze_lyrics(payload.lyrics)
    return AnalyzeResponse(analysis=analysis, recommended_genre=recommend_genre(analysis))


@app.post("/api/compose", response_model=Composition)
def compose_endpoint(payload: ComposeRequest):
    log_event(
        logger,
        "compose_inputs_received",
        genre=payload.options.genre,
        emotion=payload.options.emotion,
        key=payload.options.key,
        tempo=payload.options.tempo,
        lyrics_length=len(payload.lyrics),
    )
    try:
        return compose(payload.lyrics, payload.options)
    except EmptyLyricsError as exc:
        raise _handle_user_error("Composition", exc, "Enter some lyrics first.") from exc


@app.post("/api/export-musicxml")
def export_musicxml_endpoint(payload: ExportRequest):
    log_event(logger, "export_started", format="musicxml")
    try:
        content = export_musicxml(payload.composition)
    except (KeyError, IndexError) as exc:
        raise _handle_user_error("MusicXML export", exc, "The composition references chords that do not exist.") from exc

    log_event(logger, "export_completed", format="musicxml", output_size_bytes=len(content.encode("utf-8")))
    return Response(
        content=content,
        media_type="application/vnd.recordare.musicxml+xml",
        headers={"Content-Disposition": "attachment; filename=poem-song.musicxml"},
    )
