# healthmate/gemini.py
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from . import config

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Analysis completed."
FALLBACK_SUMMARY = "Analysis completed. Please consult with your doctor for detailed interpretation."
FALLBACK_QUESTIONS = [
    "Can you explain these results in detail?",
    "Are there any concerns I should be aware of?",
    "What follow-up actions do you recommend?",
]

MIME_BY_EXT = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}

ANALYSIS_INSTRUCTIONS = """
Provide a structured response in JSON format with the following fields:
1. summary: A brief summary of the report findings in English (max 200 words)
2. abnormalities: An array of strings listing any abnormal values or findings
3. doctorQuestions: An array of 3-5 relevant questions the patient should ask their doctor

Focus on:
- Highlighting any values outside normal ranges
- Explaining what each abnormal value might indicate
- Suggesting appropriate follow-up questions

Return ONLY valid JSON, no additional text.
"""

CHAT_INSTRUCTIONS = (
    "You are a helpful health assistant. Answer health-related questions clearly and provide general guidance.\n"
    "Always remind users to consult with healthcare professionals for medical advice."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class AIServiceError(Exception):
    pass


def mime_type_for(path: str) -> str:
    return MIME_BY_EXT.get(os.path.splitext(path)[1].lower(), "image/jpeg")


def parse_analysis(text: Optional[str]) -> Dict[str, Any]:
    """
    Turn a model reply into {summary, abnormalities, doctorQuestions}.

    Code fences are stripped and the first {...} span is parsed. Missing or
    malformed fields get defaults; an unparseable reply keeps its first 500
    characters as the summary.
    """
    raw = (text or "").strip()
    cleaned = _FENCE_RE.sub("", raw).strip()
    match = _OBJECT_RE.search(cleaned)
    if match:
        cleaned = match.group(0)
    try:
        parsed = json.loads(cleaned)
        if not isinstance(parsed, dict):
            raise ValueError("expected a JSON object")
    except ValueError as e:
        logger.warning(f"Could not parse AI analysis as JSON: {e}")
        return {
            "summary": raw[:500] or FALLBACK_SUMMARY,
            "abnormalities": [],
            "doctorQuestions": list(FALLBACK_QUESTIONS),
        }

    summary = parsed.get("summary")
    abnormalities = parsed.get("abnormalities")
    questions = parsed.get("doctorQuestions")
    return {
        "summary": summary if isinstance(summary, str) and summary.strip() else DEFAULT_SUMMARY,
        "abnormalities": [str(a) for a in abnormalities] if isinstance(abnormalities, list) else [],
        "doctorQuestions": [str(q) for q in questions] if isinstance(questions, list) else [],
    }


def format_history(history: List[Dict[str, Any]], turns: int) -> str:
    lines = []
    for msg in history[-turns:] if turns > 0 else []:
        speaker = "User" if msg.get("sender") == "user" else "AI"
        lines.append(f"{speaker}: {msg.get('text', '')}")
    return "\n".join(lines)


class GeminiService:
    """Single Gemini client shared by report analysis and chat."""

    def __init__(self, api_key: Optional[str], model: str, timeout_seconds: int = 60):
        self.model = model
        self._client = None
        if api_key:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=timeout_seconds * 1000),
            )

    @classmethod
    def from_config(cls) -> "GeminiService":
        if not config.GEMINI_API_KEY:
            logger.warning("GEMINI_API_KEY is not configured; AI analysis will fall back")
        return cls(config.GEMINI_API_KEY, config.GEMINI_MODEL, config.AI_TIMEOUT_SECONDS)

    def _generate(self, contents, json_output: bool = False) -> str:
        if self._client is None:
            raise AIServiceError("GEMINI_API_KEY is not configured")
        gen_config = types.GenerateContentConfig(
            temperature=0.2,
            response_mime_type="application/json" if json_output else None,
        )
        response = self._client.models.generate_content(
            model=self.model,
            contents=contents,
            config=gen_config,
        )
        return response.text or ""

    def analyze_file(self, file_path: str, report_type: str) -> Dict[str, Any]:
        with open(file_path, "rb") as f:
            data = f.read()
        prompt = f"Analyze this medical report ({report_type}).\n{ANALYSIS_INSTRUCTIONS}"
        # inline data is base64-encoded by the client on the wire
        part = types.Part.from_bytes(data=data, mime_type=mime_type_for(file_path))
        return parse_analysis(self._generate([prompt, part], json_output=True))

    def analyze_data(self, data: Dict[str, Any], report_type: str) -> Dict[str, Any]:
        prompt = (
            f"Analyze this medical report data ({report_type}).\n\n"
            f"Report Data:\n{json.dumps(data, indent=2, default=str)}\n"
            f"{ANALYSIS_INSTRUCTIONS}"
        )
        return parse_analysis(self._generate(prompt, json_output=True))

    def chat(self, message: str, history: List[Dict[str, Any]]) -> str:
        context = format_history(history, config.CHAT_CONTEXT_TURNS)
        prompt = CHAT_INSTRUCTIONS + "\n\n"
        if context:
            prompt += f"Previous conversation:\n{context}\n\n"
        prompt += f"User: {message}\nAI:"
        reply = self._generate(prompt).strip()
        if not reply:
            raise AIServiceError("Empty response from model")
        return reply
