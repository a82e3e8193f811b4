"""Chat clients for docrag."""

from docrag.llm.chat_client import OpenAIChatClient
from docrag.llm.factory import ChatClientProtocol, create_chat_client

__all__ = ["OpenAIChatClient", "ChatClientProtocol", "create_chat_client"]
