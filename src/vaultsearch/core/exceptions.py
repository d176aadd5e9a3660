"""
Unified exception hierarchy for vaultsearch.

Raised inside components; the public entry points (retrieve, indexing) catch them and degrade
instead of surfacing them to the host.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime

from vaultsearch.core.id_generator import generate_id
from vaultsearch.core.utils.datetime_utils import utc_now, format_iso


class VaultSearchError(Exception):
    """
    Base error of the vaultsearch system.

    Features:
    1. Structured serialization
    2. Rich context
    3. Resolution suggestions
    4. Unique id for tracking in logs
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        self.id: str = generate_id()
        self.timestamp: datetime = utc_now()
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[Exception] = cause
        self.suggestions: List[str] = []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for logs and CLI output.

        Returns:
            {
                "error_id": "hex32chars",
                "code": "EmbeddingError",
                "message": "Embedding provider returned 3 vectors for 4 texts",
                "timestamp": "2024-01-20T10:30:00Z",
                "context": {...}
            }
        """
        result: Dict[str, Any] = {
            "error_id": self.id,
            "code": self.code,
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
            "context": self.context,
        }

        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def add_suggestion(self, suggestion: str) -> None:
        """Add a resolution hint, ignoring empties and duplicates."""
        if not suggestion or not isinstance(suggestion, str):
            return

        if suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def is_retryable(self) -> bool:
        """Whether the failed operation may succeed if repeated."""
        return False


class ConfigurationError(VaultSearchError):
    """Invalid or unreadable configuration."""

    pass


class ValidationError(VaultSearchError):
    """Invalid input that cannot be normalized."""

    pass


class NotFoundError(VaultSearchError):
    """A document or chunk could not be found in the store."""

    pass


class ExternalServiceError(VaultSearchError):
    """
    Failure of an external service (embedding provider, chat model).

    Tracking:
    - Service that failed
    - Attempts made
    """

    def is_retryable(self) -> bool:
        """External service errors are usually transient."""
        return True


class EmbeddingError(ExternalServiceError):
    """The embedding provider failed or returned malformed vectors."""

    pass


class IndexPersistenceError(VaultSearchError):
    """The JSONL index file could not be read or written."""

    def is_retryable(self) -> bool:
        """Disk errors (locks, full disks) sometimes clear up."""
        return True


class IndexingCancelledError(VaultSearchError):
    """Raised at a cancellation point when indexing was cancelled by the host."""

    pass
