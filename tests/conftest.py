"""
Shared fixtures for the test suite
"""

import os

import pytest

from infrastructure.config.settings import AppConfig
from infrastructure.database.conversation_store import SqliteConversationStore
from infrastructure.resilience.retry_service import RetryService
from tests.fakes import RecordingSleep


@pytest.fixture
def config(tmp_path):
    """Plain configuration with local paths and no waiting between retries"""
    cfg = AppConfig()
    cfg.database.db_path = os.path.join(str(tmp_path), "conversations.db")
    cfg.auth.user_db_path = os.path.join(str(tmp_path), "users.db")
    cfg.llm.base_delay = 0.0
    cfg.references.base_delay = 0.0
    cfg.database.base_delay = 0.0
    cfg.logging.enable_langfuse_tracing = False
    cfg.logging.enable_file_logging = False
    return cfg


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def retry_service(sleeper):
    return RetryService(sleep=sleeper, failure_threshold=5, recovery_timeout=60)


@pytest.fixture
def store(config):
    return SqliteConversationStore(config.database.db_path)
