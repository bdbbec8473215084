"""Convenience exports for oracle client implementations."""

from .llm_client import (
    LLMClient,
    Oracle,
    OracleEnvelopeError,
    OracleError,
    OracleTransportError,
)
from .ollama import OllamaClient
from .responses import ResponsesClient

__all__ = [
    "LLMClient",
    "OllamaClient",
    "Oracle",
    "OracleEnvelopeError",
    "OracleError",
    "OracleTransportError",
    "ResponsesClient",
]
