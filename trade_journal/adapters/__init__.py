"""Adapter layer package for broker integration boundaries."""

from .feed_errors import (
	TransactionFeedAuthError,
	TransactionFeedConnectionError,
	TransactionFeedError,
	TransactionFeedResponseError,
	TransactionFeedTimeoutError,
)
from .interfaces import TransactionFeedPort, TransactionFetchResult
from .json_file_source import JsonFileTransactionSource
from .transaction_feed import BrokerTransactionFeedAdapter

__all__ = [
	"BrokerTransactionFeedAdapter",
	"JsonFileTransactionSource",
	"TransactionFeedAuthError",
	"TransactionFeedConnectionError",
	"TransactionFeedError",
	"TransactionFeedPort",
	"TransactionFeedResponseError",
	"TransactionFeedTimeoutError",
	"TransactionFetchResult",
]
