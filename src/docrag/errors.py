"""
Error taxonomy shared by the provider clients and the retrieval orchestrator.

    - Misconfigured: bad credentials or invalid requests; never retried
    - ResourceExhausted: rate limits and quota; switches a scope to keyword mode
    - Transient: timeouts, connection failures and 5xx; retried once
    - NotFound: nothing to search
"""

from typing import Any, Optional


NO_SOURCES_MESSAGE = (
    "I don't have any documents to search through. Please upload some documents first."
)
NO_RELEVANT_MESSAGE = (
    "I couldn't find any relevant information in the documents to answer your question."
)
NO_ANSWER_MESSAGE = "I couldn't generate an answer."
EMPTY_SCOPE_GUIDANCE = (
    "There are no readable passages in the selected documents yet. "
    "Upload a document or wait for processing to finish, then ask again."
)

QUOTA_MARKERS = ("insufficient_quota", "quota", "rate limit", "rate_limit")


class DocRagError(Exception):
    """Base class for every error raised by docrag."""


class ProviderError(DocRagError):
    """An embedding or chat provider call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Misconfigured(ProviderError):
    """Authentication or request validation failed. Not retried."""


class ResourceExhausted(ProviderError):
    """Rate limit or quota exhausted. Triggers degradation, never retried."""


class Transient(ProviderError):
    """Network failure, timeout or server error. Eligible for one retry."""


class NotFound(DocRagError):
    """A scope or document has nothing to search."""


def classify_status(status_code: int, body: str = "") -> type[ProviderError]:
    """
    Map an HTTP status code (and response body) to an error class.

    Args:
        status_code: HTTP status returned by the provider
        body: Response body text, inspected for quota markers

    Returns:
        The ProviderError subclass describing the failure
    """
    lowered = body.lower()
    if status_code == 429 or any(marker in lowered for marker in QUOTA_MARKERS):
        return ResourceExhausted
    if status_code in (408, 409) or status_code >= 500:
        return Transient
    return Misconfigured


def error_from_response(response: Any, service: str) -> ProviderError:
    """
    Build a classified error from a failed provider response.

    Works with both httpx and requests responses, which share
    ``status_code`` and ``text``.
    """
    status_code = int(getattr(response, "status_code", 0))
    body = getattr(response, "text", "") or ""
    error_cls = classify_status(status_code, body)
    snippet = body[:200].replace("\n", " ")
    return error_cls(f"{service} returned HTTP {status_code}: {snippet}", status_code=status_code)
