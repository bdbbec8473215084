"""Client for the OpenAI Responses API (plain-text answers)."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .llm_client import LLMClient, OracleEnvelopeError, Transport, http_transport

__all__ = ["ResponsesClient", "ResponsesEnvelope"]

DEFAULT_BASE_URL = "https://api.openai.com/v1/responses"


class ResponsesEnvelope(BaseModel):
    """The subset of a Responses API payload needed to find the answer text."""

    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    output: List[Dict[str, Any]] = Field(default_factory=list)
    output_text: Optional[str] = None


class ResponsesClient(LLMClient):
    """Thin adapter around the Responses API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = "gpt-5-mini",
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model, transport=transport, timeout=timeout)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": text}],
                }
            ],
        }

    def extract_answer(self, raw: str) -> str:
        envelope = self._validate_envelope(raw, ResponsesEnvelope)
        if envelope.status not in (None, "completed"):
            raise OracleEnvelopeError(f"Response did not complete (status: {envelope.status}).")
        if envelope.output_text and envelope.output_text.strip():
            return envelope.output_text
        text = self._first_text_content(envelope.output)
        if text is None:
            raise OracleEnvelopeError("Response did not contain any output text.")
        return text

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        return http_transport(
            self._base_url,
            payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout,
        )

    @staticmethod
    def _first_text_content(container: List[Dict[str, Any]]) -> Optional[str]:
        """Return the first text field found within the output events."""
        for item in container:
            if not isinstance(item, dict):
                continue

            # Structured message entry as returned by the Responses API.
            contents = item.get("content")
            if isinstance(contents, list):
                for content_item in contents:
                    if isinstance(content_item, dict):
                        text = content_item.get("text")
                        if isinstance(text, str) and text.strip():
                            return text

            text_value = item.get("text")
            if isinstance(text_value, str) and text_value.strip():
                return text_value
        return None
