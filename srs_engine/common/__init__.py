"""
Common Components for the Scheduling Engine

This package contains the infrastructure shared across the engine.

Key components:
1. Configuration - Layered settings from defaults, files and environment
2. Logging - Centralized logging configuration
3. Error Handling - Engine error hierarchy with structured logging
4. Validation - Boundary validation of incoming payloads
5. Concurrency - Keyed locks and a background executor
6. Cache - In-memory schedule cache
"""

# Initialize logging
from srs_engine.common.logger import app_logger

from srs_engine.common.config import EngineConfig, ConfigLoader, get_config, reload_config
from srs_engine.common.error_handling import (
    SrsError, DataValidationError, NotFoundError, DuplicateItemError,
    DuplicateSessionError, InsufficientDataError, PolicyError,
    AdvisoryError, AdvisoryTimeoutError, log_error
)
from srs_engine.common.threading import KeyedLock, BackgroundExecutor
from srs_engine.common.cache import CacheEntry, MemoryCache

__all__ = [
    # Logging
    'app_logger',

    # Configuration
    'EngineConfig', 'ConfigLoader', 'get_config', 'reload_config',

    # Errors
    'SrsError', 'DataValidationError', 'NotFoundError', 'DuplicateItemError',
    'DuplicateSessionError', 'InsufficientDataError', 'PolicyError',
    'AdvisoryError', 'AdvisoryTimeoutError', 'log_error',

    # Concurrency
    'KeyedLock', 'BackgroundExecutor',

    # Caching
    'CacheEntry', 'MemoryCache',
]
