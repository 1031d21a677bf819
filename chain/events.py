"""Transaction pool status events as reported by the node."""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class EventKind(str, Enum):
    FUTURE = "future"
    READY = "ready"
    BROADCAST = "broadcast"
    IN_BLOCK = "inBlock"
    RETRACTED = "retracted"
    FINALITY_TIMEOUT = "finalityTimeout"
    FINALIZED = "finalized"
    USURPED = "usurped"
    DROPPED = "dropped"
    INVALID = "invalid"
    # Raised locally (signing, transport, runtime) rather than by the pool.
    ERROR = "error"


TERMINAL_KINDS = frozenset(
    {
        EventKind.FINALIZED,
        EventKind.FINALITY_TIMEOUT,
        EventKind.USURPED,
        EventKind.DROPPED,
        EventKind.INVALID,
        EventKind.ERROR,
    }
)

_BLOCK_KINDS = frozenset(
    {EventKind.IN_BLOCK, EventKind.RETRACTED, EventKind.FINALITY_TIMEOUT, EventKind.FINALIZED}
)


@dataclass(frozen=True)
class StatusEvent:
    kind: EventKind
    tx_hash: Optional[str] = None
    block_ref: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def describe(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        if self.block_ref:
            return f"{self.kind.value}: {self.block_ref}"
        return self.kind.value


def event_from_rpc(result: Any, tx_hash: Optional[str] = None) -> StatusEvent:
    """Translate an `author_extrinsicUpdate` result into a StatusEvent."""
    if isinstance(result, str):
        name, value = result, None
    elif isinstance(result, dict) and len(result) == 1:
        name, value = next(iter(result.items()))
    else:
        return StatusEvent(EventKind.ERROR, tx_hash=tx_hash, message=f"Unrecognised status: {json.dumps(result)}")

    try:
        kind = EventKind(name)
    except ValueError:
        return StatusEvent(EventKind.ERROR, tx_hash=tx_hash, message=f"Unrecognised status: {name}")

    if kind in _BLOCK_KINDS:
        return StatusEvent(kind, tx_hash=tx_hash, block_ref=str(value) if value is not None else None)
    if kind == EventKind.BROADCAST and isinstance(value, list):
        return StatusEvent(kind, tx_hash=tx_hash, message=f"{len(value)} peer(s)")
    if kind == EventKind.USURPED and value is not None:
        return StatusEvent(kind, tx_hash=tx_hash, message=f"usurped by {value}")
    return StatusEvent(kind, tx_hash=tx_hash)


def error_event(message: str, tx_hash: Optional[str] = None) -> StatusEvent:
    return StatusEvent(EventKind.ERROR, tx_hash=tx_hash, message=message)
