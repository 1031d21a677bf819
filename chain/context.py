from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from config import ChainSettings, parse_utc_timestamp
from errors import ConfigurationError

if TYPE_CHECKING:
    from .rpc import ChainClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainReference:
    """A (block, timestamp) anchor plus the chain's block interval."""

    block_height: int
    timestamp: datetime
    block_interval_seconds: float = 6.0

    def __post_init__(self) -> None:
        if self.block_interval_seconds <= 0:
            raise ValueError("block_interval_seconds must be greater than zero")
        if self.block_height < 0:
            raise ValueError("block_height cannot be negative")
        if self.timestamp.tzinfo is None:
            raise ValueError("Reference timestamp must be timezone aware")


@dataclass(frozen=True)
class ChainContext:
    """
    Everything the estimator, resolver and submitter need to know about the
    connected chain. A reconnect builds a new context; contexts are never
    mutated in place.
    """

    address_prefix: int
    token_symbol: str
    token_decimals: int
    reference: Optional[ChainReference] = None
    endpoint: Optional[str] = None
    genesis_hash: Optional[str] = None

    def with_reference(self, reference: Optional[ChainReference]) -> "ChainContext":
        return replace(self, reference=reference)


def pinned_reference(chain_settings: ChainSettings, prefix: int) -> Optional[ChainReference]:
    entry = chain_settings.references.get(str(prefix))
    if entry is None:
        return None
    return ChainReference(
        block_height=int(entry["block"]),
        timestamp=parse_utc_timestamp(str(entry["timestamp"])),
        block_interval_seconds=float(entry.get("interval", chain_settings.block_interval_seconds)),
    )


def offline_context(chain_settings: ChainSettings, prefix: Optional[int] = None) -> ChainContext:
    """Context built purely from settings, for estimates made without a node."""
    resolved_prefix = chain_settings.default_prefix if prefix is None else prefix
    return ChainContext(
        address_prefix=resolved_prefix,
        token_symbol=chain_settings.default_symbol,
        token_decimals=chain_settings.default_decimals,
        reference=pinned_reference(chain_settings, resolved_prefix),
    )


def _first(value: Any) -> Any:
    # system_properties may report a list per token
    if isinstance(value, list):
        return value[0] if value else None
    return value


async def load_chain_context(client: ChainClient, chain_settings: ChainSettings, endpoint: Optional[str] = None) -> ChainContext:
    """Read chain properties over RPC and attach the matching block reference."""
    properties: Dict[str, Any] = await client.system_properties() or {}

    prefix = properties.get("ss58Format")
    if prefix is None:
        prefix = chain_settings.default_prefix
    symbol = _first(properties.get("tokenSymbol")) or chain_settings.default_symbol
    decimals = _first(properties.get("tokenDecimals"))
    if decimals is None:
        decimals = chain_settings.default_decimals

    try:
        prefix = int(prefix)
        decimals = int(decimals)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Chain reported malformed properties: {properties}") from exc

    genesis_hash = await client.genesis_hash()

    if chain_settings.live_reference:
        block = await client.current_block()
        millis = await client.timestamp_now()
        reference: Optional[ChainReference] = ChainReference(
            block_height=block,
            timestamp=datetime.fromtimestamp(millis / 1000, tz=timezone.utc),
            block_interval_seconds=chain_settings.block_interval_seconds,
        )
        logger.info("Using live block reference %s at %s", block, reference.timestamp.isoformat())
    else:
        reference = pinned_reference(chain_settings, prefix)
        if reference is None:
            logger.warning("No pinned block reference for SS58 prefix %s", prefix)

    context = ChainContext(
        address_prefix=prefix,
        token_symbol=str(symbol),
        token_decimals=decimals,
        reference=reference,
        endpoint=endpoint,
        genesis_hash=genesis_hash,
    )
    logger.info("Connected chain: prefix=%s unit=%s decimals=%s", prefix, symbol, decimals)
    return context
