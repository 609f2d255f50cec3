"""
FastAPI presentation boundary for cruise-control calls.

The presentation layer never touches audio or the agent connection directly. It reads
the controller's state, configuration and latest volume pair, sends the user intents
(start, engage, disengage, end) and the configuration setters, and downloads the
recording produced when a call ends. ``/ws/telemetry`` pushes the same snapshot
periodically for volume meters.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional

import dotenv
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse

from cruise_control import __version__
from cruise_control.config.logging_config import configure_logging
from cruise_control.controller import CallController
from cruise_control.errors import CruiseControlError
from cruise_control.models.api_schemas import CallConfigRequest, EngageRequest, StartCallRequest
from cruise_control.models.call_session import CallState

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

logger = configure_logging()

RECORDINGS_DIR = Path(os.getenv("RECORDINGS_DIR", "recordings"))
TELEMETRY_INTERVAL = float(os.getenv("TELEMETRY_INTERVAL", "0.1"))  # seconds

app = FastAPI(
    title="Cruise Control",
    description="Hand a live phone call to a Gemini Live agent and record the conversation",
    version=__version__,
)

controller = CallController(recordings_dir=RECORDINGS_DIR)


@app.exception_handler(CruiseControlError)
async def cruise_control_error_handler(request: Request, exc: CruiseControlError):
    """Report operation failures with the state the controller rolled back to."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "state": controller.state.value},
    )


def _rejected(action: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=f"Cannot {action} while {controller.state.value}",
    )


@app.get("/")
async def root():
    """Basic information about the API."""
    return {
        "name": "Cruise Control",
        "description": app.description,
        "version": __version__,
        "endpoints": {
            "/call": "Current call state, configuration and volume",
            "/call/config": "Set target, mode and goal",
            "/call/start": "Start a call",
            "/call/engage": "Hand the call to the agent",
            "/call/disengage": "Take the call back",
            "/call/end": "Hang up and finalize the recording",
            "/recordings/{filename}": "Download a call recording",
            "/ws/telemetry": "Periodic state and volume updates",
            "/health": "Health check endpoint",
        },
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "api_key_configured": bool(controller.session_manager.api_key),
        "state": controller.state.value,
    }


@app.get("/call")
async def get_call():
    return controller.snapshot()


@app.put("/call/config")
async def configure_call(request: CallConfigRequest):
    if request.target is not None and not controller.set_target(request.target):
        raise _rejected("change the target")
    if request.mode is not None:
        controller.set_mode(request.mode)
    if request.goal is not None:
        controller.set_goal(request.goal)
    return controller.snapshot()


@app.post("/call/start")
async def start_call(request: Optional[StartCallRequest] = None):
    target = request.target if request else None
    if not await controller.start_call(target):
        if controller.state == CallState.IDLE:
            raise HTTPException(status_code=409, detail="A call target is required")
        raise _rejected("start a call")
    return controller.snapshot()


@app.post("/call/engage")
async def engage(request: Optional[EngageRequest] = None):
    request = request or EngageRequest()
    if not await controller.engage(request.mode, request.goal):
        raise _rejected("engage the agent")
    return controller.snapshot()


@app.post("/call/disengage")
async def disengage():
    if not await controller.disengage():
        raise _rejected("disengage the agent")
    return controller.snapshot()


@app.post("/call/end")
async def end_call():
    if controller.state == CallState.IDLE:
        raise _rejected("end a call")
    artifact = await controller.end_call()
    recording = None
    if artifact is not None:
        recording = {
            "filename": artifact.filename,
            "size": artifact.size,
            "mime_type": artifact.mime_type,
            "url": f"/recordings/{artifact.filename}" if artifact.path else None,
        }
    return {
        "state": controller.state.value,
        "recording": recording,
        "message": None if artifact else controller.last_error,
    }


@app.get("/recordings/{filename}")
async def download_recording(filename: str):
    if Path(filename).name != filename:
        raise HTTPException(status_code=404, detail="Recording not found")
    path = RECORDINGS_DIR / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Recording not found")
    return FileResponse(path, media_type="audio/wav", filename=filename)


@app.websocket("/ws/telemetry")
async def telemetry(websocket: WebSocket):
    """Push the controller snapshot every ``TELEMETRY_INTERVAL`` seconds."""
    await websocket.accept()
    try:
        while True:
            await websocket.send_json(controller.snapshot())
            await asyncio.sleep(TELEMETRY_INTERVAL)
    except WebSocketDisconnect:
        logger.debug("Telemetry client disconnected")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
