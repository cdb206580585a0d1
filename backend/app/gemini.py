"""
app/gemini.py
-------------
Generative-text capability backed by Google's Gemini REST API.

Gemini generateContent protocol:
  POST {GEMINI_API_URL}/{model}:generateContent
  Header: x-goog-api-key: <key>
  Body:   { "contents": [ { "parts": [ { "text": "<prompt>" } ] } ] }
  Reply:  { "candidates": [ { "content": { "parts": [ { "text": "..." } ] } } ] }

One attempt per call, bounded by `timeout`.  Every failure (HTTP error,
timeout, blocked or empty candidate) is raised as GenerationError so the
DialogueRouter can fall back.

Docs: https://ai.google.dev/api/generate-content
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.dialogue import GenerationError

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiGenerator:
    """Implements the router's TextGenerator protocol over httpx."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("GEMINI_API_KEY must be set to use GeminiGenerator")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{GEMINI_API_URL}/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        payload = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self.url,
                    headers={
                        "x-goog-api-key": self.api_key,
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                if not resp.is_success:
                    logger.error("Gemini HTTP %s: %s", resp.status_code, resp.text)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise GenerationError(f"Gemini request failed: {exc}") from exc

        try:
            data: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise GenerationError(f"Gemini returned invalid JSON: {exc}") from exc

        text = _extract_text(data)
        logger.info("Gemini reply received: model=%s  len=%d", self.model, len(text))
        return text


def _extract_text(data: dict[str, Any]) -> str:
    """Join the text parts of the first candidate."""
    candidates: list = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {})
        raise GenerationError(f"Gemini returned no candidates: {feedback}")

    parts: list = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts).strip()
    if not text:
        raise GenerationError("Gemini returned an empty candidate")
    return text
