# backend/tools/tool_segment_analyzer.py
import os
import copy
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
from dotenv import load_dotenv
from pydantic import ValidationError
import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from utils.llm_utils import call_gemini_with_retries
from utils.report_schema import SegmentResult, TimeWindow
from utils.timestamp_utils import format_clock, format_timestamp, parse_timestamp

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Configuration ---
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')
ANALYSIS_MODEL_NAME = os.getenv("ANALYSIS_MODEL", "gemini-2.5-pro")
ANALYSIS_REQUEST_TIMEOUT = int(os.getenv("ANALYSIS_REQUEST_TIMEOUT", "900"))

ANALYSIS_FUNCTION_NAME = "submit_video_analysis"

# Channel knowledge base injected into every prompt
CHANNEL_CONTEXT = {
    "channel_name": "Physics Wallah - Alakh Pandey",
    "visual_style": "Clear hand-written notes, High contrast overlays",
    "common_pitfalls": ["Long generic intros", "Blurry handwriting on whiteboards", "Low energy voice modulation"],
}

# --- Function Declaration (structured output schema) ---
ANALYSIS_TOOL = {
    "function_declarations": [
        {
            "name": ANALYSIS_FUNCTION_NAME,
            "description": "Submit the findings of the video proofreading analysis, including issues, marketing scores, and platform fit.",
            "parameters": {
                "type": "object",
                "properties": {
                    "score": {"type": "number", "description": "Overall quality score out of 100"},
                    "issues": {
                        "type": "array",
                        "description": "List of time-stamped issues found in the video",
                        "items": {
                            "type": "object",
                            "properties": {
                                "timestamp": {"type": "string", "description": "Absolute MM:SS (or HH:MM:SS past one hour) from the start of the full video"},
                                "type": {"type": "string", "format": "enum", "enum": ["spelling", "factual", "clarity", "marketing", "platform"]},
                                "severity": {"type": "string", "format": "enum", "enum": ["critical", "major", "minor", "suggestion"]},
                                "description": {"type": "string", "description": "Short description of the issue"},
                                "found": {"type": "string", "description": "What was found (e.g., the typo)"},
                                "shouldBe": {"type": "string", "description": "The correction"},
                                "impact": {"type": "string", "description": "Why this matters"},
                            },
                            "required": ["timestamp", "type", "severity", "description"],
                        },
                    },
                    "marketing": {
                        "type": "object",
                        "properties": {
                            "overallScore": {"type": "number"},
                            "hookScore": {"type": "number"},
                            "hookFeedback": {"type": "string"},
                            "ctaScore": {"type": "number"},
                            "ctaFeedback": {"type": "string"},
                            "retentionCurve": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "time": {"type": "string"},
                                        "value": {"type": "number"},
                                        "label": {"type": "string"},
                                    },
                                    "required": ["time", "value"],
                                },
                            },
                        },
                        "required": ["overallScore", "hookScore"],
                    },
                    "platformFit": {
                        "type": "object",
                        "properties": {
                            "aspectRatio": {"type": "boolean"},
                            "duration": {"type": "boolean"},
                            "thumbnail": {"type": "string", "format": "enum", "enum": ["low", "medium", "high"]},
                            "captions": {"type": "boolean"},
                        },
                        "required": ["aspectRatio", "duration", "thumbnail", "captions"],
                    },
                },
                "required": ["score", "issues", "marketing", "platformFit"],
            },
        }
    ]
}

TOOL_CONFIG = {"function_calling_config": {"mode": "ANY", "allowed_function_names": [ANALYSIS_FUNCTION_NAME]}}

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
}

AnalysisReply = Union[Dict[str, Any], str]
AnalyzeFn = Callable[[str], AnalysisReply]


class SegmentAnalysisError(Exception):
    """One window could not be analyzed. The run skips it and continues."""
    pass


# --- Prompt Construction ---
def build_segment_prompt(
    window: TimeWindow,
    index: int,
    total: int,
    title: str,
    platform: str,
    channel_url: Optional[str] = None,
) -> str:
    is_first = index == 0
    is_last = index == total - 1

    if total > 1:
        time_instruction = (
            f"CRITICAL INSTRUCTION: Analyze the video ONLY from timestamp {format_clock(window.start)} "
            f"to {format_clock(window.end)} (HH:MM:SS). This is segment {index + 1} of {total}. "
            "Do not summarize the whole video. Focus deeply on this specific time window."
        )
    elif window.is_open_ended:
        time_instruction = "CRITICAL INSTRUCTION: Analyze the video from 00:00:00 to the very end. Do not stop in the middle."
    else:
        time_instruction = (
            f"CRITICAL INSTRUCTION: Analyze the video from 00:00:00 to {format_clock(window.end)} (the very end). "
            "Do not stop in the middle."
        )

    channel_line = f"\n      - Channel URL: {channel_url}" if channel_url else ""
    prompt = f"""
      CONTEXT: CHANNEL KNOWLEDGE BASE ({CHANNEL_CONTEXT['channel_name']}){channel_line}
      - Visual Style: {CHANNEL_CONTEXT['visual_style']}.
      - Common Pitfalls: {", ".join(CHANNEL_CONTEXT['common_pitfalls'])}.

      Target Platform: {platform}.
      Video Title: "{title}"

      ROLE: You are the Ultimate Video QA System.
      TASK: Perform a FRAME-BY-FRAME analysis.

      {time_instruction}

      TIMESTAMPS: Every timestamp you return (issues and retention curve points) MUST be ABSOLUTE,
      measured from the start of the full video (00:00), NOT from the start of this segment.
      Use MM:SS, or HH:MM:SS for positions past one hour.

      CHECKS:
      1. Identify spelling errors in Hindi/English text overlays within this timeframe.
      2. Check formulas and stated facts for accuracy within this timeframe.
      3. {"Analyze marketing hook (first 15s)." if is_first else "Skip marketing hook analysis for this segment."}
      4. {"Analyze CTA effectiveness at the end." if is_last else "Skip CTA analysis for this segment."}
      5. Call the function '{ANALYSIS_FUNCTION_NAME}' with your findings for THIS segment.
    """
    return prompt


# --- Reply Handling ---
def _to_plain(value: Any) -> Any:
    """Converts proto-plus map/repeated composites into dicts and lists."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, Sequence):
        return [_to_plain(v) for v in value]
    return value


def extract_function_args(response: Any) -> AnalysisReply:
    """
    Returns the submit_video_analysis arguments as plain dicts, or the reply
    text when the model answered in prose instead of calling the function.
    """
    candidates = getattr(response, 'candidates', None)
    if not candidates:
        raise SegmentAnalysisError("No response from AI")

    content = getattr(candidates[0], 'content', None)
    parts = getattr(content, 'parts', None) or []
    texts = []
    for part in parts:
        function_call = getattr(part, 'function_call', None)
        if function_call and getattr(function_call, 'name', '') == ANALYSIS_FUNCTION_NAME:
            return _to_plain(function_call.args)
        text = getattr(part, 'text', None)
        if text:
            texts.append(text)
    return "".join(texts)


def _shift_if_relative(entry: Dict[str, Any], key: str, segment_start: float) -> bool:
    raw = entry.get(key)
    # a missing value reads as 00:00, same as malformed text
    if raw is not None and not isinstance(raw, str):
        return False
    seconds = parse_timestamp(raw)
    if seconds < segment_start:
        entry[key] = format_timestamp(seconds + segment_start)
        return True
    return False


def correct_segment_timestamps(reply: Dict[str, Any], segment_start: float) -> Dict[str, Any]:
    """
    Shifts issue and retention timestamps that fall before segment_start by
    segment_start, assuming the model answered relative to the window.
    A genuinely early absolute timestamp in a later window is shifted too.
    """
    if segment_start <= 0:
        return reply

    corrected = copy.deepcopy(reply)
    shifted = 0
    for issue in corrected.get('issues') or []:
        if isinstance(issue, dict) and _shift_if_relative(issue, 'timestamp', segment_start):
            shifted += 1
    marketing = corrected.get('marketing')
    if isinstance(marketing, dict):
        for point in marketing.get('retentionCurve') or []:
            if isinstance(point, dict) and _shift_if_relative(point, 'time', segment_start):
                shifted += 1
    if shifted:
        logger.info(f"Shifted {shifted} relative timestamp(s) by {format_clock(segment_start)}.")
    return corrected


def parse_segment_reply(reply: AnalysisReply, window: TimeWindow, index: int) -> SegmentResult:
    if not isinstance(reply, Mapping):
        logger.warning(f"Segment {index + 1} returned text instead of a function call: {str(reply)[:200]!r}")
        raise SegmentAnalysisError("AI returned text instead of structured data. Retrying recommended.")
    try:
        return SegmentResult.model_validate({**reply, "window": window, "index": index})
    except ValidationError as e:
        logger.warning(f"Segment {index + 1} reply failed schema validation: {e}")
        raise SegmentAnalysisError(
            f"AI returned structured data that does not match the analysis schema ({e.error_count()} error(s))."
        ) from e


# --- Main Tool Function ---
def analyze_segment(
    window: TimeWindow,
    index: int,
    total: int,
    analyze_fn: AnalyzeFn,
    title: str,
    platform: str,
    channel_url: Optional[str] = None,
) -> SegmentResult:
    """Runs one window through the analysis primitive and returns its validated, corrected result."""
    prompt = build_segment_prompt(window, index, total, title, platform, channel_url)
    reply = analyze_fn(prompt)
    if isinstance(reply, Mapping):
        reply = correct_segment_timestamps(dict(reply), window.start)
    return parse_segment_reply(reply, window, index)


def make_gemini_analyze_fn(
    file_name: str,
    model_name: str = ANALYSIS_MODEL_NAME,
    request_timeout: int = ANALYSIS_REQUEST_TIMEOUT,
) -> AnalyzeFn:
    """Binds an ACTIVE uploaded file and the analysis model into an analyze_fn."""
    logger.info(f"Initializing analysis model ({model_name}) for {file_name}...")
    video_file = genai.get_file(file_name)
    model = genai.GenerativeModel(
        model_name,
        tools=[ANALYSIS_TOOL],
        tool_config=TOOL_CONFIG,
        safety_settings=SAFETY_SETTINGS,
    )

    def _analyze(prompt_text: str) -> AnalysisReply:
        response = call_gemini_with_retries(
            model_input=[prompt_text, video_file],
            model_instance=model,
            model_name=model_name,
            request_options={'timeout': request_timeout},
        )
        return extract_function_args(response)

    return _analyze
