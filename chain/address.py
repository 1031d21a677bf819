"""
SS58 account addresses.

Addresses are compared, sorted and hashed by their decoded 32-byte account
id, never by their string form: the same account has a different string
under every network prefix.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, List, Optional, Tuple

import base58

from errors import InvalidAddress

from .scale import ACCOUNT_ID_LENGTH, blake2_256, encode_compact, encode_u16

_SS58_PRE = b"SS58PRE"
_CHECKSUM_LENGTH = 2
_MULTISIG_SEED = b"modlpy/utilisuba"
_RESERVED_PREFIXES = (46, 47)


def _ss58_hash(data: bytes) -> bytes:
    return hashlib.blake2b(_SS58_PRE + data, digest_size=64).digest()


def _prefix_bytes(prefix: int) -> bytes:
    if 0 <= prefix < 64:
        return bytes([prefix])
    if 64 <= prefix < 16384:
        first = ((prefix & 0b1111_1100) >> 2) | 0b0100_0000
        second = (prefix >> 8) | ((prefix & 0b0000_0011) << 6)
        return bytes([first, second])
    raise ValueError(f"SS58 prefix out of range: {prefix}")


def encode_address(account_id: bytes, prefix: int) -> str:
    """Encode a 32-byte account id under the given network prefix."""
    if len(account_id) != ACCOUNT_ID_LENGTH:
        raise ValueError(f"Account id must be {ACCOUNT_ID_LENGTH} bytes, got {len(account_id)}")
    body = _prefix_bytes(prefix) + account_id
    checksum = _ss58_hash(body)[:_CHECKSUM_LENGTH]
    return base58.b58encode(body + checksum).decode("ascii")


def _split(address: str) -> Tuple[int, bytes, bool]:
    """Return (prefix, account id, checksum ok) or raise InvalidAddress."""
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress(str(address), "Empty address")
    try:
        raw = base58.b58decode(address.strip())
    except ValueError as exc:
        raise InvalidAddress(address, f"Invalid base58 encoding: {exc}") from exc

    if not raw:
        raise InvalidAddress(address, "Invalid empty address")
    if raw[0] & 0b0100_0000:
        if len(raw) < 2:
            raise InvalidAddress(address, "Invalid decoded address length")
        lower = ((raw[0] & 0b0011_1111) << 2) | (raw[1] >> 6)
        upper = raw[1] & 0b0011_1111
        prefix = lower | (upper << 8)
        prefix_length = 2
    else:
        prefix = raw[0]
        prefix_length = 1

    if len(raw) != prefix_length + ACCOUNT_ID_LENGTH + _CHECKSUM_LENGTH:
        raise InvalidAddress(address, "Invalid decoded address length")

    body = raw[:-_CHECKSUM_LENGTH]
    checksum_ok = _ss58_hash(body)[:_CHECKSUM_LENGTH] == raw[-_CHECKSUM_LENGTH:]
    return prefix, raw[prefix_length:-_CHECKSUM_LENGTH], checksum_ok


def decode_address(address: str) -> bytes:
    """Decode an SS58 address of any network to its account id."""
    prefix, account_id, checksum_ok = _split(address)
    if not checksum_ok:
        raise InvalidAddress(address, "Invalid decoded address checksum")
    if prefix in _RESERVED_PREFIXES:
        raise InvalidAddress(address, f"Reserved SS58 prefix {prefix}")
    return account_id


def validate_address(address: str, prefix: int) -> Tuple[bool, Optional[str]]:
    """Check an address for the given network. Returns (is_valid, reason)."""
    try:
        found, _, checksum_ok = _split(address)
    except InvalidAddress as exc:
        return False, exc.reason
    if not checksum_ok:
        return False, "Invalid decoded address checksum"
    if found != prefix:
        return False, f"Prefix mismatch, expected {prefix}, found {found}"
    return True, None


def check_address(address: str, prefix: int) -> bytes:
    """Validate for the given network and return the account id."""
    ok, reason = validate_address(address, prefix)
    if not ok:
        raise InvalidAddress(address, reason or "unknown")
    return decode_address(address)


def reencode(address: str, prefix: int) -> str:
    return encode_address(decode_address(address), prefix)


def same_account(first: str, second: str) -> bool:
    return decode_address(first) == decode_address(second)


def sort_account_ids(account_ids: Iterable[bytes]) -> List[bytes]:
    """Ascending byte-lexicographic order, the order the multisig pallet expects."""
    return sorted(account_ids)


def derive_multisig_account(account_ids: Iterable[bytes], threshold: int) -> bytes:
    """
    Deterministic multisig account id: blake2_256 over the seed, the sorted
    participant ids (length prefixed) and the threshold as u16.
    """
    ids = sort_account_ids(set(account_ids))
    for account_id in ids:
        if len(account_id) != ACCOUNT_ID_LENGTH:
            raise ValueError(f"Account id must be {ACCOUNT_ID_LENGTH} bytes, got {len(account_id)}")
    payload = _MULTISIG_SEED + encode_compact(len(ids)) + b"".join(ids) + encode_u16(threshold)
    return blake2_256(payload)
