"""
Monitoring infrastructure - structured logging.
"""

from .logging_service import (
    StructuredFormatter,
    setup_logging,
    initialize_logging,
    get_logger,
    log_execution_time,
    log_conversation_event,
    get_logging_status
)

__all__ = [
    'StructuredFormatter',
    'setup_logging',
    'initialize_logging',
    'get_logger',
    'log_execution_time',
    'log_conversation_event',
    'get_logging_status'
]
