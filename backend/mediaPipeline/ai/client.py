import json
import logging

from openai import OpenAI, OpenAIError

from ..errors import CollaboratorFailure

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_MODEL = "deepseek-chat"

TRANSCRIBE_PROMPT = "Transcribe the audio from this URL: {media}"
SCENES_PROMPT = (
    "Analyze this video and detect scene changes: {media}. "
    "Return JSON with a scenes array containing timestamp, description, and confidence."
)
SUBTITLES_PROMPT = (
    "Generate SRT-style subtitles from this transcript for a {duration}s video:\n\n{transcript}\n\n"
    "Return JSON with a subtitles array of objects with start, end, and text."
)
EDITS_PROMPT = (
    "Based on this transcript and scenes, suggest video edits:\n\n"
    "Transcript: {transcript}\n\nScenes: {scenes}\n\n"
    "Return JSON with cuts and highlights arrays."
)


def _parse_json(text: str) -> dict:
    text = (text or "").strip()
    # models sometimes wrap JSON in a markdown fence
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise CollaboratorFailure(f"AI response was not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise CollaboratorFailure("AI response JSON must be an object")
    return parsed


class AIClient:
    """Request/response wrapper around an OpenAI-compatible chat endpoint."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, model: str = DEFAULT_MODEL, client=None):
        self.model = model
        self._client = client or OpenAI(api_key=api_key, base_url=base_url)

    def _complete(self, prompt: str, max_tokens: int, json_mode: bool = False) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except OpenAIError as e:
            logger.warning("AI request failed: %s: %s", type(e).__name__, e)
            raise CollaboratorFailure(f"AI request failed: {e}") from e

        if not response.choices or response.choices[0].message.content is None:
            raise CollaboratorFailure("AI response had no content")
        return response.choices[0].message.content

    def transcribe(self, media_ref: str) -> str:
        return self._complete(TRANSCRIBE_PROMPT.format(media=media_ref), max_tokens=4096)

    def analyze_scenes(self, media_ref: str) -> dict:
        parsed = _parse_json(self._complete(SCENES_PROMPT.format(media=media_ref), max_tokens=8192, json_mode=True))
        scenes = parsed.get("scenes")
        if not isinstance(scenes, list):
            raise CollaboratorFailure("AI scene analysis did not return a scenes array")
        return {
            "scenes": [
                {
                    "timestamp": float(s.get("timestamp", 0)),
                    "description": str(s.get("description", "")),
                    "confidence": float(s.get("confidence", 0)),
                }
                for s in scenes
                if isinstance(s, dict)
            ]
        }

    def generate_subtitles(self, transcript: str, duration: float) -> list[dict]:
        prompt = SUBTITLES_PROMPT.format(duration=duration, transcript=transcript)
        parsed = _parse_json(self._complete(prompt, max_tokens=8192, json_mode=True))
        subtitles = parsed.get("subtitles")
        if not isinstance(subtitles, list):
            raise CollaboratorFailure("AI subtitle generation did not return a subtitles array")
        return subtitles

    def suggest_edits(self, transcript: str, scenes: list) -> dict:
        prompt = EDITS_PROMPT.format(transcript=transcript, scenes=json.dumps(scenes))
        parsed = _parse_json(self._complete(prompt, max_tokens=8192, json_mode=True))
        return {
            "cuts": parsed.get("cuts") or [],
            "highlights": parsed.get("highlights") or [],
        }
