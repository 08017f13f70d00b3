"""
Configuration module for loading and validating environment variables.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _get_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


class Config:
    """Application configuration loaded from environment variables."""
    
    def __init__(self, env_path: Optional[Path] = None):
        # Load .env file from project root
        if env_path is None:
            env_path = Path(__file__).parent.parent / ".env"
        load_dotenv(dotenv_path=env_path)
        
        # Model endpoint (any OpenAI-compatible API, OpenRouter by default)
        self.api_key = os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY")
        self.base_url = os.getenv("MODEL_BASE_URL", "https://openrouter.ai/api/v1")
        self.chat_model = os.getenv("CHAT_MODEL", "google/gemini-3-flash-preview")
        self.builder_model = os.getenv("BUILDER_MODEL", "google/gemini-3-pro-preview")
        self.chat_temperature = _get_float("CHAT_TEMPERATURE", 0.2)
        self.builder_temperature = _get_float("BUILDER_TEMPERATURE", 0.7)
        self.request_timeout = _get_float("MODEL_TIMEOUT_SECONDS", 120.0)
        self.app_url = os.getenv("APP_URL", "http://localhost:8501")
        self.app_title = os.getenv("APP_TITLE", "CV Platform")
        
        # Conversation history policy (None keeps every turn)
        self.max_history_turns = _get_optional_int("MAX_HISTORY_TURNS")
        
        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_format = os.getenv("LOG_FORMAT", "text")
        self.log_dir = Path(os.getenv("LOG_DIR", "./logs"))
        
        # Validate required settings
        self._validate()
    
    def _validate(self):
        """Validate that all required environment variables are set."""
        missing = []
        
        if not self.api_key:
            missing.append("OPENROUTER_API_KEY")
        if not self.base_url:
            missing.append("MODEL_BASE_URL")
        
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Please create a .env file with these variables. See .env.example for reference."
            )
        
        if self.log_format not in ("text", "json", "both"):
            raise ConfigError(f"LOG_FORMAT must be one of text, json, both (got {self.log_format!r})")
        if self.request_timeout <= 0:
            raise ConfigError("MODEL_TIMEOUT_SECONDS must be positive")


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
