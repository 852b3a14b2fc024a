"""FastAPI entry-point for the SmartSole controller."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import numpy as np
import psutil
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Settings, get_settings
from .logging_config import configure_logging
from .models import AnalyzeRequest, AnalyzeResponse, SubjectRequest
from .session_manager import InvalidSubjectError, SessionManager
from .synthesizer import synthesize

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(
    settings.log_level,
    settings.log_directory,
    settings.log_retention_days,
    service_name=settings.service_name,
)
app = FastAPI(title=settings.service_name, version="0.1.0")
manager = SessionManager(settings=settings)
# Shared by /api/analyze; seeded so a fixed RNG_SEED replays the same reports
synth_rng = np.random.default_rng(settings.rng_seed)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all exception handler to prevent application crashes."""
    logger.exception(f"Unhandled exception in {request.url.path}: {exc}")
    return PlainTextResponse(
        f"Internal server error: {str(exc)}",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors gracefully."""
    logger.warning(f"Validation error in {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)}
    )


@app.exception_handler(InvalidSubjectError)
async def invalid_subject_handler(request: Request, exc: InvalidSubjectError) -> JSONResponse:
    logger.warning(f"Rejected subject in {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.user_message}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    try:
        await manager.stop()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok", "phase": manager.phase.value})


@app.get("/debug/performance")
async def debug_performance() -> JSONResponse:
    """Get real-time CPU and memory usage."""
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        memory = psutil.virtual_memory()

        return JSONResponse({
            "cpu_percent": round(cpu_percent, 1),
            "memory_percent": round(memory.percent, 1),
            "memory_used_mb": round(memory.used / (1024 * 1024), 1),
            "memory_total_mb": round(memory.total / (1024 * 1024), 1)
        })
    except Exception as e:
        logger.error(f"Performance monitoring error: {e}")
        return JSONResponse(
            {"error": str(e)},
            status_code=500
        )


# ============================================================
# Remote synthesizer
# ============================================================

@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(payload: AnalyzeRequest) -> Dict[str, Any]:
    """Synthesize one report for the subject, after a simulated network delay."""
    report = synthesize(payload.age, payload.gender, rng=synth_rng)
    await asyncio.sleep(settings.acquisition.simulated_delay)
    return report.to_wire()


# ============================================================
# Session actions
# ============================================================

def _action_result(applied: bool) -> JSONResponse:
    return JSONResponse({
        "status": "ok" if applied else "ignored",
        "session": manager.snapshot(),
    })


@app.get("/session")
async def session_state() -> JSONResponse:
    return JSONResponse(manager.snapshot())


@app.post("/session/start")
async def session_start() -> JSONResponse:
    return _action_result(await manager.start())


@app.post("/session/subject")
async def session_subject(payload: SubjectRequest) -> JSONResponse:
    return _action_result(await manager.submit_subject(payload.age, payload.gender))


@app.post("/session/connect")
async def session_connect() -> JSONResponse:
    return _action_result(await manager.connect_device())


@app.post("/session/reset")
async def session_reset() -> JSONResponse:
    await manager.reset_session()
    return _action_result(True)


@app.websocket("/ws/ui")
async def ui_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = manager.register_ui()
    try:
        # Current state first so a fresh client can render immediately
        await ws.send_json({"type": "state", "phase": manager.phase.value, "data": manager.snapshot()})
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                break  # Clean shutdown

            payload = {
                "type": event.type,
                "phase": event.phase.value,
                "data": event.data,
            }
            if event.error:
                payload["error"] = event.error

            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.debug(f"WebSocket send failed (client disconnected): {e}")
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass  # Clean shutdown
    except Exception as e:
        logger.error(f"Unexpected error in UI websocket: {e}")
    finally:
        manager.unregister_ui(queue)
        try:
            await ws.close()
        except Exception:
            pass
