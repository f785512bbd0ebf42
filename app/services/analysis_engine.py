"""
Vision-model client for gameplay cheating analysis.
Frames go in, a {verdict, confidence, reasoning} triple comes out, or AnalysisError.
"""
import base64
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from app.services.video_frames import VideoInputError, extract_frames

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
GEMINI_TIMEOUT_SECONDS = 120

ANALYSIS_PROMPT = """You are an advanced esports anti-cheat analyst. Analyze this gameplay footage to determine if the player is using any unfair devices or unauthorized input methods (Cronus Zen, Cronus Max, Titan One, Titan Two, XIM Apex, XIM Matrix, mouse & keyboard emulators, strike packs, macros, anti-recoil scripts, etc).

Look for:
- Unnatural flicking or auto-tracking (aimbot)
- Rapid recoil compensation (anti-recoil scripts)
- Perfect input timing (strike packs, macros)
- Mouse-like aim on console
- Input method mismatches (controller overlay vs actual aim behavior)

Respond ONLY with a JSON object in this exact format:
{
  "verdict": "Likely Cheating" | "Clean" | "Suspicious" | "Inconclusive",
  "confidence": "<percent, e.g. 91%>",
  "reasoning": "<1-2 sentence summary of the evidence and reasoning>"
}

If unsure, use "Inconclusive" with a low confidence."""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AnalysisError(Exception):
    """The analysis engine failed or returned something we could not parse."""


@dataclass
class AnalysisResult:
    verdict: Optional[str]
    confidence: Optional[str]
    reasoning: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_model_reply(text: str) -> AnalysisResult:
    """Pull the first JSON object out of the model's reply."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise AnalysisError("Failed to parse analysis response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Failed to parse analysis response: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisError("Analysis response is not a JSON object")
    return AnalysisResult(
        verdict=data.get("verdict"),
        confidence=data.get("confidence"),
        reasoning=data.get("reasoning"),
        raw=data,
    )


class GeminiAnalysisEngine:
    def __init__(self, api_key: str = GEMINI_API_KEY, model: str = GEMINI_MODEL, base_url: str = GEMINI_BASE_URL):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url

    def analyze_frames(self, frames: List[bytes]) -> AnalysisResult:
        if not self.api_key:
            raise AnalysisError("GEMINI_API_KEY is not configured")
        if not frames:
            raise AnalysisError("No frames to analyze")

        parts = [
            {"inline_data": {"mime_type": "image/jpeg", "data": base64.b64encode(frame).decode()}}
            for frame in frames
        ]
        parts.append({"text": ANALYSIS_PROMPT})

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            r = requests.post(
                url,
                params={"key": self.api_key},
                json={"contents": [{"parts": parts}]},
                timeout=GEMINI_TIMEOUT_SECONDS,
            )
            r.raise_for_status()
            body = r.json()
        except requests.exceptions.RequestException as e:
            raise AnalysisError(f"Analysis request failed: {e}") from e
        except ValueError as e:
            raise AnalysisError("Analysis service returned invalid JSON") from e

        try:
            text = "".join(
                part.get("text", "")
                for part in body["candidates"][0]["content"]["parts"]
            )
        except (KeyError, IndexError, TypeError) as e:
            raise AnalysisError("Analysis service returned no candidates") from e

        logger.info("[API RESPONSE] Received response from analysis model (%s chars)", len(text))
        return parse_model_reply(text)


class VideoAnalyzer:
    """Frame extraction followed by the vision model call."""

    def __init__(self, engine: Optional[GeminiAnalysisEngine] = None, max_frames: int = 20):
        self.engine = engine or GeminiAnalysisEngine()
        self.max_frames = max_frames

    def analyze_video(self, video_path: str) -> AnalysisResult:
        frames = extract_frames(video_path, max_frames=self.max_frames)
        if not frames:
            raise VideoInputError("Failed to extract frames from video")
        return self.engine.analyze_frames(frames)


def get_video_analyzer() -> VideoAnalyzer:
    """FastAPI dependency; overridden in tests."""
    return VideoAnalyzer()
