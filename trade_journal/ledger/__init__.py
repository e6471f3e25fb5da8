"""Ledger layer package for FIFO matching, trade identity and option position lifecycle."""

from .interfaces import LedgerPositionPort, TradeReadRepositoryPort
from .fingerprint import (
	TradeIdentityLedger,
	TradeIdentitySource,
	trade_external_identity,
	trade_fingerprint,
	trade_identity_keys,
)
from .fifo_matcher import (
	FifoMatchRequest,
	FifoMatchResult,
	InstrumentLotQueues,
	MalformedTransactionFinding,
	OpenLot,
	OpenPositionSummary,
	OptionContractDetails,
	UnmatchedClosingFinding,
	fifo_aggregate_simultaneous_trades,
	fifo_format_display_symbol,
	fifo_match_transactions,
	fifo_parse_occ_option_symbol,
	fifo_resolve_option_details,
	fifo_summarize_open_lots,
)
from .position_lifecycle import (
	OUTCOME_STATUS_BREAKEVEN,
	OUTCOME_STATUS_FREE,
	OUTCOME_STATUS_LOSS,
	OUTCOME_STATUS_PROFIT,
	RECOVERY_STATUS_AT_RISK,
	RECOVERY_STATUS_FREE,
	RECOVERY_STATUS_RECOVERING,
	OptionPositionGroup,
	ParsedOptionTicker,
	PositionLifecycleConfig,
	PositionLifecycleService,
	ScaleOutEvent,
	position_build_option_groups,
	position_parse_option_ticker,
	position_recovery_status,
	position_resolve_option_contract,
)
from .position_metrics import (
	OptionsMetricsSummary,
	OptionTypeStats,
	UnderlyingStats,
	position_calculate_options_metrics,
)

__all__ = [
	"LedgerPositionPort",
	"TradeReadRepositoryPort",
	"TradeIdentityLedger",
	"TradeIdentitySource",
	"trade_external_identity",
	"trade_fingerprint",
	"trade_identity_keys",
	"FifoMatchRequest",
	"FifoMatchResult",
	"InstrumentLotQueues",
	"MalformedTransactionFinding",
	"OpenLot",
	"OpenPositionSummary",
	"OptionContractDetails",
	"UnmatchedClosingFinding",
	"fifo_aggregate_simultaneous_trades",
	"fifo_format_display_symbol",
	"fifo_match_transactions",
	"fifo_parse_occ_option_symbol",
	"fifo_resolve_option_details",
	"fifo_summarize_open_lots",
	"OUTCOME_STATUS_BREAKEVEN",
	"OUTCOME_STATUS_FREE",
	"OUTCOME_STATUS_LOSS",
	"OUTCOME_STATUS_PROFIT",
	"RECOVERY_STATUS_AT_RISK",
	"RECOVERY_STATUS_FREE",
	"RECOVERY_STATUS_RECOVERING",
	"OptionPositionGroup",
	"ParsedOptionTicker",
	"PositionLifecycleConfig",
	"PositionLifecycleService",
	"ScaleOutEvent",
	"position_build_option_groups",
	"position_parse_option_ticker",
	"position_recovery_status",
	"position_resolve_option_contract",
	"OptionsMetricsSummary",
	"OptionTypeStats",
	"UnderlyingStats",
	"position_calculate_options_metrics",
]
