"""
Session ledger: an ordered, keyed record of every submission attempt.

Records are created under a provisional key (the call fingerprint) and
promoted once to the transaction hash. Promotion keeps the record's place
in insertion order. Nothing here outlives the process; `export_rows` is the
only way data leaves the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

UNKNOWN_BLOCK = "unknown"


class Status(str, Enum):
    SENDING = "Sending"
    SENT = "Sent"
    BROADCAST = "Broadcast"
    IN_BLOCK = "InBlock"
    FINALIZED = "Finalized"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.FINALIZED, Status.ERROR)


class ExportScope(str, Enum):
    ALL = "all"
    LAST = "last"


@dataclass(frozen=True)
class SubmissionRecord:
    key: str
    label: str
    recipient: str
    amount: str
    # The account funds move from: the signer, or the multisig account.
    sender: str
    signer: str
    unlock_block: int
    call_hash: str
    call_data: str
    status: Status = Status.SENDING
    error: Optional[str] = None
    finalized_block: str = UNKNOWN_BLOCK

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def row(self) -> List[str]:
        values: List[str] = []
        for name in self.field_names():
            value = getattr(self, name)
            if value is None:
                values.append("")
            elif isinstance(value, Enum):
                values.append(str(value.value))
            else:
                values.append(str(value))
        return values


class SessionLedger:
    def __init__(self) -> None:
        self._records: Dict[str, SubmissionRecord] = {}
        self._last_key: Optional[str] = None

    def insert_provisional(self, key: str, record: SubmissionRecord) -> None:
        if key in self._records:
            raise KeyError(f"Ledger already holds a record under {key}")
        self._records[key] = replace(record, key=key)
        self._last_key = key

    def update(self, key: str, record: SubmissionRecord) -> None:
        """Insert or overwrite the record under `key`."""
        self._records[key] = replace(record, key=key)
        self._last_key = key

    def promote_key(self, old_key: str, new_key: str) -> bool:
        """
        Move a record from `old_key` to `new_key` in one step.
        Returns False if `old_key` is not present (e.g. after `clear()`).
        """
        if old_key not in self._records:
            return False
        if old_key == new_key:
            self._last_key = new_key
            return True
        if new_key in self._records:
            raise KeyError(f"Ledger already holds a record under {new_key}")
        self._records = {
            (new_key if key == old_key else key): (replace(record, key=new_key) if key == old_key else record)
            for key, record in self._records.items()
        }
        self._last_key = new_key
        logger.debug("Ledger key %s promoted to %s", old_key, new_key)
        return True

    def get(self, key: str) -> Optional[SubmissionRecord]:
        return self._records.get(key)

    @property
    def last_key(self) -> Optional[str]:
        return self._last_key

    @property
    def last_record(self) -> Optional[SubmissionRecord]:
        if self._last_key is None:
            return None
        return self._records.get(self._last_key)

    def keys(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[SubmissionRecord]:
        return list(self._records.values())

    def export_rows(self, scope: ExportScope = ExportScope.ALL) -> List[List[str]]:
        if scope == ExportScope.LAST:
            last = self.last_record
            return [] if last is None else [last.row()]
        records = self.records()
        if not records:
            return []
        return [records[0].field_names()] + [record.row() for record in records]

    def export_tsv(self, scope: ExportScope = ExportScope.ALL) -> str:
        return "\n".join("\t".join(row) for row in self.export_rows(scope))

    def clear(self) -> None:
        self._records.clear()
        self._last_key = None
        logger.info("Session ledger cleared")

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[SubmissionRecord]:
        return iter(self.records())
