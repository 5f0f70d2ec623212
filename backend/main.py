# backend/main.py
import logging
import os
import re
import pathlib
import shutil
from typing import List, Optional
from uuid import uuid4
from fastapi import FastAPI, HTTPException, Query, BackgroundTasks, UploadFile, File, Form, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import uvicorn

from tools.tool_video_qa import VideoQAArgs, run_video_qa
from utils.cancellation_utils import clear_flag, initialize_flag, set_cancel_flag
from utils.export_utils import report_to_csv, report_to_json
from utils.preferences_utils import JsonFileStore, PublicPreferences, UserPreferences, load_preferences, save_preferences
from utils.progress_utils import ProgressEvent
from utils.report_schema import AnalysisReport
from utils import session_utils

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("ProofVisionAPI")

# --- Configuration ---
load_dotenv(dotenv_path=pathlib.Path(__file__).parent / '.env')
TEMP_BASE_DIR = pathlib.Path(os.getenv("TEMP_DATA_DIR", "./temp_video_data")).resolve()
PREFERENCES_FILE = pathlib.Path(os.getenv("PREFERENCES_FILE", "./preferences.json")).resolve()
SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")

preferences_store = JsonFileStore(PREFERENCES_FILE)

# --- Lifespan Event for Initialization ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    TEMP_BASE_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"Upload directory: {TEMP_BASE_DIR}")
    yield
    logger.info("API shutting down...")

# --- FastAPI App ---
app = FastAPI(title="ProofVision API", lifespan=lifespan)

# --- CORS Middleware Configuration ---
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Request/Response Models ---
class AnalyzeResponse(BaseModel):
    session_id: str
    status: str

class AnalysisStatusResponse(BaseModel):
    session_id: str
    status: str
    title: str
    platform: str
    message: Optional[str] = None
    events: List[ProgressEvent] = Field(default_factory=list)
    report: Optional[AnalysisReport] = None

class CancelRequest(BaseModel):
    session_id: str = Field(..., description="The session ID of the analysis to cancel.")

# --- Helpers ---
def _validate_session_id(session_id: str):
    if not session_id or not SESSION_ID_PATTERN.match(session_id):
        logger.error(f"Invalid session_id format received: '{session_id}'")
        raise HTTPException(status_code=400, detail="Invalid session ID format.")

def _require_session(session_id: str) -> dict:
    _validate_session_id(session_id)
    session = session_utils.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Analysis session not found.")
    return session

def _require_report(session_id: str) -> AnalysisReport:
    session = _require_session(session_id)
    if session["report"] is None:
        raise HTTPException(status_code=409, detail=f"No report available (status: {session['status']}).")
    return session["report"]

def _default_title(filename: Optional[str]) -> str:
    stem = pathlib.Path(filename or "video").stem
    return stem.replace("_", " ") or "Untitled video"

def _run_analysis_job(args: VideoQAArgs, preferences: UserPreferences):
    session_dir = pathlib.Path(args.file_path).parent
    try:
        result = run_video_qa(
            **args.model_dump(),
            preferences=preferences,
            on_progress=lambda event: session_utils.record_event(args.session_id, event),
        )
        session_utils.finish_session(args.session_id, result["status"], result["message"], result["report"])
    finally:
        clear_flag(args.session_id)
        try:
            shutil.rmtree(session_dir)
            logger.info(f"Removed local upload directory {session_dir}")
        except OSError as e:
            logger.warning(f"Could not remove local upload directory {session_dir}: {e}")

# --- Analyze Endpoint ---
@app.post("/api/analyze", response_model=AnalyzeResponse, status_code=status.HTTP_202_ACCEPTED)
async def analyze_endpoint(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    platform: str = Form("YouTube"),
    sessionId: Optional[str] = Form(None),
    channelUrl: Optional[str] = Form(None),
):
    session_id = sessionId or f"session_{uuid4()}"
    _validate_session_id(session_id)
    if session_utils.get_session(session_id) is not None:
        raise HTTPException(status_code=409, detail="An analysis already exists for this session ID.")

    video_title = title or _default_title(file.filename)
    session_dir = TEMP_BASE_DIR / session_id
    session_dir.mkdir(parents=True, exist_ok=True)
    suffix = pathlib.Path(file.filename or "").suffix or ".mp4"
    local_path = session_dir / f"upload{suffix}"

    try:
        with open(local_path, "wb") as out:
            shutil.copyfileobj(file.file, out)
    except OSError as e:
        logger.exception(f"Failed to store upload for session {session_id}: {e}")
        shutil.rmtree(session_dir, ignore_errors=True)
        raise HTTPException(status_code=500, detail="Failed to store uploaded video.")
    finally:
        await file.close()

    logger.info(f"Stored upload '{file.filename}' ({local_path.stat().st_size} bytes) for session {session_id}")
    args = VideoQAArgs(
        file_path=str(local_path),
        session_id=session_id,
        title=video_title,
        platform=platform,
        mime_type=file.content_type,
        channel_url=channelUrl,
    )
    initialize_flag(session_id)
    session_utils.start_session(session_id, video_title, platform)
    background_tasks.add_task(_run_analysis_job, args, load_preferences(preferences_store))
    return AnalyzeResponse(session_id=session_id, status="queued")

# --- Status Endpoint ---
@app.get("/api/analysis/{session_id}", response_model=AnalysisStatusResponse)
async def analysis_status_endpoint(session_id: str):
    session = _require_session(session_id)
    return AnalysisStatusResponse(
        session_id=session_id,
        status=session["status"],
        title=session["title"],
        platform=session["platform"],
        message=session["message"],
        events=session["events"],
        report=session["report"],
    )

# --- Issue Fix Endpoint ---
@app.post("/api/analysis/{session_id}/issues/{issue_id}/fix")
async def fix_issue_endpoint(session_id: str, issue_id: str):
    _require_report(session_id)
    found = session_utils.mark_issue_fixed(session_id, issue_id)
    if not found:
        raise HTTPException(status_code=404, detail="Issue not found in report.")
    return {"session_id": session_id, "issue_id": issue_id, "fixed": True}

# --- Export Endpoint ---
@app.get("/api/analysis/{session_id}/export")
async def export_endpoint(session_id: str, format: str = Query("json", description="json or csv")):
    report = _require_report(session_id)
    safe_title = "".join(c if c.isalnum() or c in ['_', '-'] else '_' for c in report.title)[:50] or "report"
    if format == "json":
        content, media_type = report_to_json(report), "application/json"
    elif format == "csv":
        content, media_type = report_to_csv(report), "text/csv"
    else:
        raise HTTPException(status_code=400, detail="Unsupported export format. Use 'json' or 'csv'.")
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{safe_title}_report.{format}"'},
    )

# --- Cancel Request Endpoint ---
@app.post("/api/cancel_request", status_code=status.HTTP_202_ACCEPTED)
async def cancel_request_endpoint(cancel_req: CancelRequest):
    _validate_session_id(cancel_req.session_id)
    logger.info(f"Received cancel for session_id: {cancel_req.session_id}")
    flag_set = set_cancel_flag(cancel_req.session_id)
    if not flag_set:
        raise HTTPException(status_code=404, detail="No running analysis for this session.")
    return {"message": "Cancellation request processed.", "flag_set": True}

# --- Preferences Endpoints ---
@app.get("/api/preferences", response_model=PublicPreferences)
async def get_preferences_endpoint():
    return PublicPreferences.from_preferences(load_preferences(preferences_store))

@app.put("/api/preferences", response_model=PublicPreferences)
async def put_preferences_endpoint(preferences: UserPreferences):
    # omitted apiKey keeps the stored key; an empty string clears it
    if preferences.api_key is None:
        preferences.api_key = load_preferences(preferences_store).api_key
    save_preferences(preferences_store, preferences)
    return PublicPreferences.from_preferences(preferences)

# --- Root Endpoint ---
@app.get("/")
def read_root():
    return {"message": "ProofVision API is running."}

# --- Run Server ---
if __name__ == "__main__":
    logger.info("Starting ProofVision API server...")
    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
