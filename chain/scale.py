"""
SCALE encoding for the handful of calls the helper builds.

Only the primitives the transfer and multisig calls need are covered:
fixed-width little-endian integers, compact integers, vectors of account
ids, options, and the two call layouts themselves.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

ACCOUNT_ID_LENGTH = 32

_U32_MAX = 2**32 - 1
_U16_MAX = 2**16 - 1


def blake2_128(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=16).digest()


def blake2_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def from_hex(value: str) -> bytes:
    text = value[2:] if value.lower().startswith("0x") else value
    return bytes.fromhex(text)


def encode_compact(value: int) -> bytes:
    """SCALE compact encoding of a non-negative integer."""
    if value < 0:
        raise ValueError("Compact integers cannot be negative")
    if value < 1 << 6:
        return bytes([value << 2])
    if value < 1 << 14:
        return ((value << 2) | 0b01).to_bytes(2, "little")
    if value < 1 << 30:
        return ((value << 2) | 0b10).to_bytes(4, "little")
    length = (value.bit_length() + 7) // 8
    if length > 67:
        raise ValueError("Integer too large for compact encoding")
    return bytes([((length - 4) << 2) | 0b11]) + value.to_bytes(length, "little")


def encode_u16(value: int) -> bytes:
    if not (0 <= value <= _U16_MAX):
        raise ValueError(f"u16 out of range: {value}")
    return value.to_bytes(2, "little")


def encode_u32(value: int) -> bytes:
    if not (0 <= value <= _U32_MAX):
        raise ValueError(f"u32 out of range: {value}")
    return value.to_bytes(4, "little")


def encode_account_vec(account_ids: Iterable[bytes]) -> bytes:
    ids = list(account_ids)
    for account_id in ids:
        if len(account_id) != ACCOUNT_ID_LENGTH:
            raise ValueError(f"Account id must be {ACCOUNT_ID_LENGTH} bytes, got {len(account_id)}")
    return encode_compact(len(ids)) + b"".join(ids)


def encode_multi_address(account_id: bytes) -> bytes:
    """MultiAddress::Id"""
    if len(account_id) != ACCOUNT_ID_LENGTH:
        raise ValueError(f"Account id must be {ACCOUNT_ID_LENGTH} bytes, got {len(account_id)}")
    return b"\x00" + account_id


@dataclass(frozen=True)
class ReleaseSchedule:
    start: int
    period: int
    period_count: int
    per_period: int

    def encode(self) -> bytes:
        if self.period <= 0 or self.period_count <= 0:
            raise ValueError("Schedule period and period count must be greater than zero")
        if self.per_period < 0:
            raise ValueError("Schedule amount cannot be negative")
        return (
            encode_u32(self.start)
            + encode_u32(self.period)
            + encode_u32(self.period_count)
            + encode_compact(self.per_period)
        )


@dataclass(frozen=True)
class Weight:
    ref_time: int
    proof_size: int = 0

    def encode(self) -> bytes:
        return encode_compact(self.ref_time) + encode_compact(self.proof_size)


def encode_transfer_call(pallet_index: int, call_index: int, dest: bytes, schedule: ReleaseSchedule) -> bytes:
    """timeRelease.transfer(dest, schedule)"""
    return bytes([pallet_index, call_index]) + encode_multi_address(dest) + schedule.encode()


def encode_as_multi_call(
    pallet_index: int,
    call_index: int,
    threshold: int,
    other_signatories: Iterable[bytes],
    inner_call: bytes,
    max_weight: Weight,
    timepoint: Optional[Tuple[int, int]] = None,
) -> bytes:
    """multisig.as_multi(threshold, other_signatories, maybe_timepoint, call, max_weight)"""
    if timepoint is None:
        encoded_timepoint = b"\x00"
    else:
        height, index = timepoint
        encoded_timepoint = b"\x01" + encode_u32(height) + encode_u32(index)
    return (
        bytes([pallet_index, call_index])
        + encode_u16(threshold)
        + encode_account_vec(other_signatories)
        + encoded_timepoint
        + inner_call
        + max_weight.encode()
    )
