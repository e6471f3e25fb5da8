"""Project-native typed exceptions for broker transaction feed failures."""

from __future__ import annotations


class TransactionFeedError(Exception):
    """Base exception for adapter-level transaction feed failures.

    Attributes:
        status_code: Optional upstream HTTP status code.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransactionFeedConnectionError(TransactionFeedError, ConnectionError):
    """Transport-level connectivity failure, or retryable upstream status that never recovered."""


class TransactionFeedTimeoutError(TransactionFeedError, TimeoutError):
    """Transport timeout while waiting for the broker feed."""


class TransactionFeedAuthError(TransactionFeedError, ValueError):
    """Bearer token rejected by the broker (`401`/`403`)."""


class TransactionFeedResponseError(TransactionFeedError, RuntimeError):
    """Non-retryable upstream status or a response body that violates the feed contract."""
