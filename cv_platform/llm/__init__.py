"""Model invocation over OpenAI-compatible chat completion APIs."""

from cv_platform.llm.openai_client import ChatModelClient, ModelCallError, ModelClient

__all__ = ["ChatModelClient", "ModelCallError", "ModelClient"]
