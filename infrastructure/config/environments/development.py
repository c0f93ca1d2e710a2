"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from infrastructure.config.settings import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Development environment configuration"""

    def __post_init__(self):
        # Start from the base configuration (including API keys)
        base_config = AppConfig.load()

        self.api = base_config.api
        self.llm = base_config.llm
        self.references = base_config.references
        self.session = base_config.session
        self.database = base_config.database
        self.resilience = base_config.resilience
        self.auth = base_config.auth
        self.logging = base_config.logging

        self.environment = "development"
        self.debug = True

        # More verbose logging in development
        self.logging.level = "DEBUG"
        self.logging.log_file = "logs/dev-app.log"

        # Trip breakers sooner so outages are visible while iterating
        self.resilience.failure_threshold = 3
        self.resilience.recovery_timeout = 30



def get_development_config() -> DevelopmentConfig:
    """Get development-specific configuration"""
    return DevelopmentConfig()
