"""
OpenAI-compatible chat client used for every model call.

Clients are built from explicit settings and handed to the orchestrator and
builder; nothing in this module reads configuration on import.
"""

import time
from typing import Dict, List, Optional, Protocol, Sequence, Union

import structlog
from openai import APIError, APITimeoutError, OpenAI

from cv_platform.config import Config
from cv_platform.schemas import ChatTurn


logger = structlog.get_logger(__name__)

Message = Union[ChatTurn, Dict[str, str]]


class ModelCallError(Exception):
    """Raised when the model call fails or returns nothing usable."""
    pass


class ModelClient(Protocol):
    """The one capability the core needs from a model."""
    
    def complete(self, messages: Sequence[Message], system_prompt: str) -> str:
        ...


def to_api_messages(messages: Sequence[Message], system_prompt: str) -> List[Dict[str, str]]:
    """Build the chat-completions message list with the system prompt first."""
    api_messages = [{"role": "system", "content": system_prompt}]
    for message in messages:
        if isinstance(message, ChatTurn):
            api_messages.append({"role": message.role, "content": message.content})
        else:
            api_messages.append({
                "role": message.get("role", "user"),
                "content": message.get("content", ""),
            })
    return api_messages


class ChatModelClient:
    """Chat completion client for OpenRouter or any OpenAI-compatible endpoint."""
    
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        timeout: float = 120.0,
        max_tokens: Optional[int] = None,
        app_url: Optional[str] = None,
        app_title: Optional[str] = None,
    ):
        headers = {}
        if app_url:
            headers["HTTP-Referer"] = app_url
        if app_title:
            headers["X-Title"] = app_title
        
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            default_headers=headers or None,
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
    
    @classmethod
    def from_config(cls, config: Config, builder: bool = False) -> "ChatModelClient":
        """
        Create a client from application configuration.
        
        Args:
            config: Loaded configuration
            builder: Use the initial-generation model and temperature instead of the chat ones
        """
        return cls(
            api_key=config.api_key,
            model=config.builder_model if builder else config.chat_model,
            base_url=config.base_url,
            temperature=config.builder_temperature if builder else config.chat_temperature,
            timeout=config.request_timeout,
            app_url=config.app_url,
            app_title=config.app_title,
        )
    
    def complete(self, messages: Sequence[Message], system_prompt: str) -> str:
        """
        Invoke the model with a system prompt and the conversation so far.
        
        Args:
            messages: Conversation turns, last one being the current request
            system_prompt: Instructions for the assistant
            
        Returns:
            The reply text
            
        Raises:
            ModelCallError: On transport, quota or timeout errors, or an empty reply
        """
        started = time.perf_counter()
        params = {
            "model": self.model,
            "messages": to_api_messages(messages, system_prompt),
            "temperature": self.temperature,
        }
        if self.max_tokens:
            params["max_tokens"] = self.max_tokens
        
        try:
            response = self.client.chat.completions.create(**params)
        except APITimeoutError as e:
            raise ModelCallError(f"Model request timed out: {e}") from e
        except APIError as e:
            raise ModelCallError(f"Model request failed: {e}") from e
        
        content = response.choices[0].message.content if response.choices else None
        logger.info(
            "model_call_completed",
            model=self.model,
            messages=len(messages),
            duration=round(time.perf_counter() - started, 2),
            reply_chars=len(content or ""),
        )
        
        if not content:
            raise ModelCallError("Model returned empty content")
        return content
