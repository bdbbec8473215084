"""Oracle capability and the base class shared by HTTP-backed clients."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

__all__ = [
    "LLMClient",
    "Oracle",
    "OracleEnvelopeError",
    "OracleError",
    "OracleTransportError",
    "Transport",
    "http_transport",
]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]
M = TypeVar("M", bound=BaseModel)


class OracleError(RuntimeError):
    """Base error raised when the oracle cannot produce an answer."""


class OracleTransportError(OracleError):
    """Raised when the underlying transport fails to return a response."""


class OracleEnvelopeError(OracleError):
    """Raised when the response envelope does not have the expected shape."""


class Oracle(Protocol):
    """Anything that turns a prompt into an answer."""

    def prompt(self, text: str) -> str: ...


def http_transport(
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float = 60.0,
) -> str:
    """POST ``payload`` as JSON and return the decoded body."""
    data = json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", **dict(headers or {})},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
            status = getattr(response, "status", 200)
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise OracleTransportError(f"Request to {url} timed out.") from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        message = error.read().decode("utf-8", errors="ignore")
        raise OracleTransportError(f"HTTP {error.code}: {message}") from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise OracleTransportError(f"Failed to reach {url}: {error.reason}") from error

    if status >= 400:
        raise OracleTransportError(f"Unexpected HTTP status {status}")
    return raw.decode("utf-8")


class LLMClient:
    """Synchronous oracle backed by a JSON request/response transport.

    Subclasses build the request payload and pull the answer text out of the
    response envelope. Transport failures are not retried here; the
    convergence loop decides what to do next.
    """

    def __init__(
        self,
        model: str,
        *,
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._timeout = timeout
        self._transport = transport or self._http_transport

    @property
    def model(self) -> str:
        """Return the model name sent with every request."""
        return self._model

    def prompt(self, text: str) -> str:
        """Send ``text`` to the model and return the answer text."""
        payload = self.build_payload(text)
        try:
            raw = self._transport(payload)
        except OracleError:
            raise
        except Exception as error:  # noqa: BLE001 - transports are user supplied
            raise OracleTransportError(f"Transport rejected the request: {error}") from error
        answer = self.extract_answer(raw)
        LOGGER.debug("Oracle %s answered with %d character(s)", self._model, len(answer))
        return answer

    def build_payload(self, text: str) -> Dict[str, Any]:
        raise NotImplementedError("Subclasses must implement build_payload().")

    def extract_answer(self, raw: str) -> str:
        raise NotImplementedError("Subclasses must implement extract_answer().")

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        raise NotImplementedError("Subclasses must provide an HTTP transport.")

    @staticmethod
    def _validate_envelope(raw: str, envelope: type[M]) -> M:
        """Parse ``raw`` into ``envelope``, normalising failures."""
        if not raw or not raw.strip():
            raise OracleEnvelopeError("Oracle returned an empty response.")
        try:
            return envelope.model_validate_json(raw)
        except ValidationError as error:
            snippet = raw.strip()[:200]
            raise OracleEnvelopeError(f"Unexpected response envelope: {snippet}") from error
