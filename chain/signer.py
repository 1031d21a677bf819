"""
Ed25519 keypair signer and signed extrinsic assembly.

The signer stands in for a wallet: it only signs for addresses whose seed it
holds and refuses everything else. Extrinsics use the immortal era and the
standard signed extension set (era, nonce, tip; spec and transaction
version plus genesis hash as implicit data).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

import nacl.utils
from nacl.signing import SigningKey

from errors import InvalidAddress, SigningRejected

from .address import decode_address, encode_address
from .scale import blake2_256, encode_compact, encode_u32, to_hex

logger = logging.getLogger(__name__)

SEED_SIZE = 32
EXTRINSIC_VERSION_SIGNED = 0x84
_MULTI_ADDRESS_ID = b"\x00"
_MULTI_SIGNATURE_ED25519 = b"\x00"
_IMMORTAL_ERA = b"\x00"
_MAX_PAYLOAD_LENGTH = 256


@dataclass(frozen=True)
class SigningContext:
    genesis_hash: bytes
    spec_version: int
    transaction_version: int
    nonce: int
    tip: int = 0

    def extra(self) -> bytes:
        return _IMMORTAL_ERA + encode_compact(self.nonce) + encode_compact(self.tip)

    def additional(self) -> bytes:
        # Immortal transactions use the genesis hash as the checkpoint block.
        return (
            encode_u32(self.spec_version)
            + encode_u32(self.transaction_version)
            + self.genesis_hash
            + self.genesis_hash
        )


def signing_payload(call: bytes, context: SigningContext) -> bytes:
    payload = call + context.extra() + context.additional()
    if len(payload) > _MAX_PAYLOAD_LENGTH:
        return blake2_256(payload)
    return payload


def encode_signed_extrinsic(call: bytes, signer_id: bytes, signature: bytes, context: SigningContext) -> bytes:
    body = (
        bytes([EXTRINSIC_VERSION_SIGNED])
        + _MULTI_ADDRESS_ID
        + signer_id
        + _MULTI_SIGNATURE_ED25519
        + signature
        + context.extra()
        + call
    )
    return encode_compact(len(body)) + body


def extrinsic_hash(extrinsic: bytes) -> str:
    return to_hex(blake2_256(extrinsic))


def generate_seed() -> bytes:
    return nacl.utils.random(SEED_SIZE)


class KeypairSigner:
    def __init__(self, prefix: int) -> None:
        self._prefix = prefix
        self._keys: Dict[bytes, SigningKey] = {}

    @classmethod
    def from_seeds(cls, seeds: Iterable[bytes], prefix: int) -> "KeypairSigner":
        signer = cls(prefix)
        for seed in seeds:
            signer.add_seed(seed)
        return signer

    def add_seed(self, seed: bytes) -> str:
        if len(seed) != SEED_SIZE:
            raise ValueError(f"Ed25519 seed must be {SEED_SIZE} bytes, got {len(seed)}")
        key = SigningKey(seed)
        account_id = bytes(key.verify_key)
        self._keys[account_id] = key
        return encode_address(account_id, self._prefix)

    def addresses(self) -> List[str]:
        return [encode_address(account_id, self._prefix) for account_id in self._keys]

    def sign(self, address: str, payload: bytes) -> bytes:
        try:
            account_id = decode_address(address)
        except InvalidAddress as exc:
            raise SigningRejected(f"Cannot sign for malformed address {address}: {exc}") from exc
        key = self._keys.get(account_id)
        if key is None:
            raise SigningRejected(f"No signing key available for {address}")
        logger.debug("Signing %d byte payload for %s", len(payload), address)
        return key.sign(payload).signature
