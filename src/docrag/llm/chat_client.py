"""
Chat client for OpenAI-compatible /chat/completions endpoints.

Errors are mapped onto the docrag taxonomy; transient failures (any network
or protocol error from requests, 5xx) get a single bounded retry with backoff.
"""

import logging
from typing import Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from docrag.errors import Misconfigured, Transient, error_from_response

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """LLM client for OpenAI-compatible chat completion endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout: float = 30.0,
        retry_backoff: float = 1.0,
    ):
        """
        Initialize the chat client.

        Args:
            base_url: Provider base URL (``/chat/completions`` is appended)
            api_key: Provider API key
            model: Chat model name
            temperature: Default sampling temperature
            max_tokens: Maximum tokens to generate
            timeout: Request timeout in seconds
            retry_backoff: Initial delay before the transient retry
        """
        self.endpoint_url = f"{base_url.rstrip('/')}/chat/completions"
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.retry_backoff = retry_backoff
        self.max_attempts = 2

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Run a chat completion.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The user turn
            temperature: Optional override of the default temperature

        Returns:
            The generated message content (may be empty)

        Raises:
            ResourceExhausted: Rate limit or quota exhausted
            Misconfigured: Missing/invalid key or rejected request
            Transient: Network failure that persisted through the retry
        """
        if not self.api_key:
            raise Misconfigured("No chat provider API key configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        for attempt in Retrying(
            retry=retry_if_exception_type(Transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, min=0, max=10),
            reraise=True,
        ):
            with attempt:
                return self._post(payload, headers)

        raise RuntimeError("All retry attempts failed")

    def _post(self, payload: dict, headers: dict[str, str]) -> str:
        try:
            response = requests.post(
                self.endpoint_url, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Chat request failed: {e}")
            raise Transient(f"Chat request failed: {e}") from e

        if response.status_code >= 400:
            error = error_from_response(response, "Chat provider")
            logger.warning(str(error))
            raise error

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise Misconfigured(f"Malformed chat response: {e}") from e
        return content or ""
