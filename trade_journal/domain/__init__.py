"""Domain models used across application layer boundaries."""

from .models import HealthStatus
from .timeline import domain_build_stage_event, domain_elapsed_ms
from .trades import (
	ASSET_TYPE_OPTION,
	ASSET_TYPE_STOCK,
	DIRECTION_LONG,
	DIRECTION_SHORT,
	OPTION_CONTRACT_MULTIPLIER,
	TRADE_STATUS_CLOSED,
	Trade,
	trade_calculate_net_pnl,
	trade_calculate_pnl_percent,
	trade_format_decimal,
	trade_multiplier_for_asset_type,
)
from .transactions import (
	InstrumentDescriptor,
	RawTransaction,
	TransactionLeg,
	TransactionPayloadError,
	domain_normalize_optional_text,
	domain_parse_raw_transaction,
	domain_parse_raw_transactions,
	domain_parse_timestamp_utc,
)

__all__ = [
	"HealthStatus",
	"domain_build_stage_event",
	"domain_elapsed_ms",
	"ASSET_TYPE_OPTION",
	"ASSET_TYPE_STOCK",
	"DIRECTION_LONG",
	"DIRECTION_SHORT",
	"OPTION_CONTRACT_MULTIPLIER",
	"TRADE_STATUS_CLOSED",
	"Trade",
	"trade_calculate_net_pnl",
	"trade_calculate_pnl_percent",
	"trade_format_decimal",
	"trade_multiplier_for_asset_type",
	"InstrumentDescriptor",
	"RawTransaction",
	"TransactionLeg",
	"TransactionPayloadError",
	"domain_normalize_optional_text",
	"domain_parse_raw_transaction",
	"domain_parse_raw_transactions",
	"domain_parse_timestamp_utc",
]
