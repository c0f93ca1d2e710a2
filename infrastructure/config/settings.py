"""
Unified Configuration System for Chavrusa

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import streamlit as st
import os
from pathlib import Path


@dataclass
class APIConfig:
    """API configuration settings"""
    openai_api_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "https://cloud.langfuse.com"

    @classmethod
    def _from_mapping(cls, source) -> 'APIConfig':
        return cls(
            openai_api_key=source.get("OPENAI_API_KEY", ""),
            langfuse_secret_key=source.get("LANGFUSE_SECRET_KEY", ""),
            langfuse_public_key=source.get("LANGFUSE_PUBLIC_KEY", ""),
            langfuse_host=source.get("LANGFUSE_HOST", "https://cloud.langfuse.com")
        )

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls._from_mapping(os.environ)

        try:
            return cls._from_mapping(st.secrets)
        except Exception:
            # No secrets.toml available outside of a Streamlit deployment
            return cls._from_mapping(os.environ)


@dataclass
class LLMConfig:
    """Language model and response generation configuration"""
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout_seconds: float = 30.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    min_response_length: int = 10
    min_context_length: int = 50
    history_limit: int = 10
    max_history_tokens: int = 3000
    summary_message_limit: int = 10

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for LangChain compatibility"""
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


@dataclass
class ReferenceConfig:
    """Reference text provider (Sefaria) configuration"""
    base_url: str = "https://www.sefaria.org/api"
    site_url: str = "https://www.sefaria.org"
    timeout_seconds: float = 5.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    cache_ttl_seconds: int = 3600
    cache_max_size: int = 100
    max_fetch_per_message: int = 3
    user_agent: str = "Chavrusa/1.0"


@dataclass
class SessionConfig:
    """Session cache and message configuration"""
    idle_ttl_seconds: int = 3600
    sweep_interval_seconds: int = 600
    max_recent_references: int = 20
    max_topics: int = 10
    max_topics_per_message: int = 5
    max_message_length: int = 2000
    default_list_limit: int = 20
    history_limit: int = 20


@dataclass
class DatabaseConfig:
    """Durable conversation store configuration"""
    db_path: str = "data/conversations.db"
    max_attempts: int = 2
    base_delay: float = 0.2
    max_delay: float = 1.0


@dataclass
class ResilienceConfig:
    """Circuit breaker configuration"""
    failure_threshold: int = 5
    recovery_timeout: int = 60


@dataclass
class AuthConfig:
    """Authentication configuration"""
    enabled: bool = True
    require_verified_email: bool = False
    token_ttl_hours: int = 24
    user_db_path: str = "data/users.db"


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = False
    log_file: str = "logs/app.log"
    enable_langfuse_tracing: bool = True


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    references: ReferenceConfig = field(default_factory=ReferenceConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        # Load API configuration from secrets/environment
        config.api = APIConfig.from_secrets()

        db_path = os.getenv("CHAVRUSA_DB_PATH")
        if db_path:
            config.database.db_path = db_path

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.api.openai_api_key:
            errors.append("OpenAI API key is required")

        if self.llm.max_attempts < 1:
            errors.append("llm.max_attempts must be at least 1")

        if self.references.max_attempts < 1:
            errors.append("references.max_attempts must be at least 1")

        if self.session.max_recent_references < 1 or self.session.max_topics < 1:
            errors.append("session reference/topic caps must be positive")

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def get_langfuse_config(self) -> Dict[str, str]:
        """Get Langfuse configuration for backward compatibility"""
        return {
            "secret_key": self.api.langfuse_secret_key,
            "public_key": self.api.langfuse_public_key,
            "host": self.api.langfuse_host
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        from .environments import get_environment_config
        _config = get_environment_config()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()


def get_openai_api_key() -> str:
    """Get OpenAI API key"""
    return get_config().api.openai_api_key


def get_langfuse_config() -> Dict[str, str]:
    """Get Langfuse configuration"""
    return get_config().get_langfuse_config()
