"""
floorplan_ai HTTP API.

A browser viewer uploads a floor plan, gets back canonical elements on the
0-1000 grid, and drives the overlay edit tools through per-session endpoints.
"""
import asyncio
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from floorplan_ai.errors import (
    FloorPlanError,
    MalformedDetectionResult,
    MalformedImage,
    NoFileProvided,
    ServiceAccessDenied,
    ServiceAuthError,
    ServiceCallFailed,
    ServiceConfigurationError,
    SessionNotFound,
)
from floorplan_ai.export import render_snapshot, snapshot_data_url
from floorplan_ai.geometry import pointer_to_canonical
from floorplan_ai.models import PlanElement
from floorplan_ai.overlay import EditTool
from floorplan_ai.service import DetectionServiceClient
from floorplan_ai.session import AnalysisSession

logger = logging.getLogger(__name__)

app = FastAPI(title="floorplan_ai - Floor Plan Detection Overlay")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Data Models
# =============================================================================

class LegendEntry(BaseModel):
    category: str
    color: str
    count: int
    visible: bool


class OverlayView(BaseModel):
    phase: str
    tool: str
    addCategory: str
    elements: List[PlanElement]
    visibility: Dict[str, bool]
    summary: Dict[str, int]
    legend: List[LegendEntry]
    boxes: List[Dict[str, Any]]
    degraded: bool = False
    processing: bool = False
    error: Optional[str] = None


class ToolRequest(BaseModel):
    tool: EditTool
    category: Optional[str] = None


class AddElementRequest(BaseModel):
    start: Tuple[float, float]  # (y, x) canonical
    end: Tuple[float, float]
    category: Optional[str] = None


class PointerRequest(BaseModel):
    x: float  # pixels, relative to the rendered image
    y: float
    width: float  # rendered image size
    height: float


# =============================================================================
# Session State
# =============================================================================

def get_client() -> DetectionServiceClient:
    return DetectionServiceClient()


class SessionStore:
    """
    Sessions keyed by client-chosen id. Only an analyze request creates one;
    every other route looks it up and fails with 404 when it is missing.
    """

    sessions: Dict[str, AnalysisSession] = {}

    def open(self, session_id: str) -> AnalysisSession:
        session = self.sessions.get(session_id)
        if session is None:
            session = AnalysisSession(client=None)
            self.sessions[session_id] = session
        return session

    def get(self, session_id: str) -> AnalysisSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(details=session_id)
        return session

    def drop(self, session_id: str) -> AnalysisSession:
        session = self.get(session_id)
        del self.sessions[session_id]
        return session


session_store = SessionStore()


def _view(session: AnalysisSession) -> OverlayView:
    overlay = session.overlay
    return OverlayView(
        phase=overlay.phase.value,
        tool=overlay.tool.value,
        addCategory=overlay.add_category,
        elements=overlay.elements,
        visibility=overlay.visibility,
        summary=overlay.summary(),
        legend=[LegendEntry(**asdict(row)) for row in overlay.legend()],
        boxes=overlay.render_boxes(),
        degraded=session.degraded,
        processing=session.processing,
        error=session.last_error,
    )


async def _read_upload(file: Optional[UploadFile]) -> bytes:
    if file is None:
        raise NoFileProvided()
    contents = await file.read()
    if not contents:
        raise NoFileProvided()
    return contents


# =============================================================================
# Error Mapping
# =============================================================================

STATUS_CODES = {
    NoFileProvided: 400,
    MalformedImage: 400,
    ServiceConfigurationError: 500,
    ServiceAuthError: 401,
    ServiceAccessDenied: 403,
    ServiceCallFailed: 502,
    MalformedDetectionResult: 502,
    SessionNotFound: 404,
}


def status_for(exc: FloorPlanError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


@app.exception_handler(FloorPlanError)
async def floorplan_error_handler(request: Request, exc: FloorPlanError) -> JSONResponse:
    body: Dict[str, Any] = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=status_for(exc), content=body)


# =============================================================================
# API Endpoints
# =============================================================================

@app.post("/api/detect")
async def detect_endpoint(file: Optional[UploadFile] = File(None)):
    contents = await _read_upload(file)
    client = get_client()
    return await asyncio.to_thread(client.detect, contents)


@app.post("/api/sessions/{session_id}/analyze", response_model=OverlayView)
async def analyze_endpoint(session_id: str, file: Optional[UploadFile] = File(None)):
    session = session_store.open(session_id)
    contents = await file.read() if file is not None else b""
    session.client = get_client()

    outcome = await session.analyze(contents)
    if outcome.stale:
        return JSONResponse(status_code=409, content={"error": "Analysis superseded by a newer upload"})
    if outcome.failure is not None:
        raise outcome.failure
    return _view(session)


@app.get("/api/sessions/{session_id}", response_model=OverlayView)
async def get_session(session_id: str):
    return _view(session_store.get(session_id))


@app.delete("/api/sessions/{session_id}", response_model=OverlayView)
async def reset_session(session_id: str):
    session = session_store.drop(session_id)
    session.reset()
    return _view(session)


@app.post("/api/sessions/{session_id}/visibility/{category}", response_model=OverlayView)
async def toggle_visibility(session_id: str, category: str):
    session = session_store.get(session_id)
    session.overlay.toggle_visibility(category)
    return _view(session)


@app.post("/api/sessions/{session_id}/tool", response_model=OverlayView)
async def select_tool(session_id: str, req: ToolRequest):
    session = session_store.get(session_id)
    overlay = session.overlay
    if req.tool is EditTool.ADD:
        overlay.begin_add(req.category)
    elif req.tool is EditTool.REMOVE:
        overlay.begin_remove()
    else:
        overlay.end_edit()
    return _view(session)


@app.post("/api/sessions/{session_id}/elements", response_model=OverlayView)
async def add_element(session_id: str, req: AddElementRequest):
    session = session_store.get(session_id)
    session.overlay.commit_add(req.start, req.end, req.category)
    return _view(session)


@app.delete("/api/sessions/{session_id}/elements/{element_id}", response_model=OverlayView)
async def remove_element(session_id: str, element_id: str):
    session = session_store.get(session_id)
    session.overlay.remove_element(element_id)
    return _view(session)


@app.post("/api/sessions/{session_id}/elements/remove-at", response_model=OverlayView)
async def remove_at_pointer(session_id: str, req: PointerRequest):
    session = session_store.get(session_id)
    point = pointer_to_canonical(req.x, req.y, req.width, req.height)
    session.overlay.remove_at(point)
    return _view(session)


@app.get("/api/sessions/{session_id}/export")
async def export_snapshot(session_id: str, fmt: str = Query("png", alias="format")):
    session = session_store.get(session_id)
    if not session.image_bytes:
        raise NoFileProvided("No analyzed image to export")
    if fmt == "dataurl":
        data_url = await asyncio.to_thread(snapshot_data_url, session.image_bytes, session.overlay)
        return {"image": data_url}
    png = await asyncio.to_thread(render_snapshot, session.image_bytes, session.overlay)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": 'attachment; filename="floorplan_analyzed.png"'},
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "1.0"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
