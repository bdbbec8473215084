"""Client for a local Ollama server's ``/api/generate`` endpoint."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .llm_client import LLMClient, OracleEnvelopeError, Transport, http_transport

__all__ = ["OllamaClient", "OllamaResponse"]

DEFAULT_ENDPOINT = "http://localhost:11434/api/generate"
DEFAULT_MODEL = "codellama:7b-instruct"


class OllamaResponse(BaseModel):
    """Non-streaming ``/api/generate`` envelope."""

    model_config = ConfigDict(extra="ignore")

    model: str
    response: str
    done: bool = True
    created_at: Optional[str] = None
    context: Optional[List[int]] = None


class OllamaClient(LLMClient):
    """Single-shot, non-streaming generation against Ollama."""

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model, transport=transport, timeout=timeout)
        self._endpoint = os.getenv("RAKUNE_OLLAMA_ENDPOINT") or endpoint

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "prompt": text,
            "stream": False,
            "context": [],
        }

    def extract_answer(self, raw: str) -> str:
        envelope = self._validate_envelope(raw, OllamaResponse)
        if not envelope.done:
            raise OracleEnvelopeError("Ollama returned a partial (streaming) response.")
        return envelope.response

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        return http_transport(self._endpoint, payload, timeout=self._timeout)
