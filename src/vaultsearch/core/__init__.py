"""
vaultsearch core module.

Exports the fundamental system components.
"""

# Logging
from vaultsearch.core.logging import (
    AsyncLogger,
    PerformanceLogger,
    logger,  # Pre-configured global logger
)

# Exceptions and errors
from vaultsearch.core.exceptions import (
    VaultSearchError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    ExternalServiceError,
    EmbeddingError,
    IndexPersistenceError,
    IndexingCancelledError,
)

# Configuration
from vaultsearch.core.secure_config import Settings, ConfigValidator

# IDs
from vaultsearch.core.id_generator import generate_id

# Observability
from vaultsearch.core.tracing import LocalTracer, MetricsCollector, tracer

# Indexing control
from vaultsearch.core.rate_limiter import RateLimiter
from vaultsearch.core.cancellation import CancellationToken

# LLM
from vaultsearch.core.ollama import OllamaClient

__all__ = [
    # Logging
    "AsyncLogger",
    "PerformanceLogger",
    "logger",
    # Exceptions
    "VaultSearchError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "ExternalServiceError",
    "EmbeddingError",
    "IndexPersistenceError",
    "IndexingCancelledError",
    # Configuration
    "Settings",
    "ConfigValidator",
    # IDs
    "generate_id",
    # Observability
    "LocalTracer",
    "MetricsCollector",
    "tracer",
    # Indexing control
    "RateLimiter",
    "CancellationToken",
    # LLM
    "OllamaClient",
]
