"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from infrastructure.config.settings import AppConfig


@dataclass
class ProductionConfig(AppConfig):
    """Production environment configuration"""

    def __post_init__(self):
        base_config = AppConfig.load()
        self.api = base_config.api
        self.database = base_config.database

        self.environment = "production"
        self.debug = False

        # Production logging - less verbose, focus on errors
        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-app.log"

        # Production security settings
        self.auth.require_verified_email = True
        self.auth.token_ttl_hours = 12

        # More consistent responses
        self.llm.temperature = 0.5


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
