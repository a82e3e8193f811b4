"""
Chat client factory.

Provides a unified interface for creating chat clients from configuration.
"""

from typing import Optional, Protocol

from docrag.config import Settings


class ChatClientProtocol(Protocol):
    """Protocol that all chat clients must implement."""

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
    ) -> str:
        """Run a chat completion and return the message text."""
        ...


def create_chat_client(
    config: Optional[Settings] = None,
    temperature: Optional[float] = None,
) -> Optional[ChatClientProtocol]:
    """
    Create a chat client based on configuration settings.

    Args:
        config: Settings to use (default: the cached application settings)
        temperature: Optional temperature override

    Returns:
        A chat client, or None when no provider credentials are configured
    """
    from docrag.config import settings as default_settings
    from docrag.llm.chat_client import OpenAIChatClient

    config = config or default_settings
    if not config.has_provider_credentials:
        return None

    return OpenAIChatClient(
        base_url=config.openai_base_url,
        api_key=config.openai_api_key_value,
        model=config.chat_model,
        temperature=config.llm_temperature if temperature is None else temperature,
        timeout=config.request_timeout,
        retry_backoff=config.retry_backoff,
    )
