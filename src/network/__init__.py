"""Network layer: error taxonomy, classification, retries and the posts API."""

from network.classifier import ErrorClassifier
from network.errors import (
    AuthenticationError,
    ErrorSeverity,
    NetworkError,
    NoConnectionError,
    OfflineAndNoCacheError,
    ParserError,
    RecoveryStrategy,
    RequestTimeoutError,
    RetryExhaustedError,
    ServerError,
    StorageError,
)
from network.retry import RequestContext, RetryConfig, RetryEngine, RetryPolicy

__all__ = [
    "ErrorClassifier",
    "ErrorSeverity",
    "RecoveryStrategy",
    "NetworkError",
    "NoConnectionError",
    "RequestTimeoutError",
    "ServerError",
    "AuthenticationError",
    "ParserError",
    "RetryExhaustedError",
    "OfflineAndNoCacheError",
    "StorageError",
    "RequestContext",
    "RetryConfig",
    "RetryEngine",
    "RetryPolicy",
]
