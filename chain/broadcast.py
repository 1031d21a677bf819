from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator, Protocol

from .address import decode_address
from .events import StatusEvent
from .rpc import ChainClient
from .scale import from_hex
from .signer import (
    KeypairSigner,
    SigningContext,
    encode_signed_extrinsic,
    extrinsic_hash,
    signing_payload,
)

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    """Signs a call for an address, submits it and streams its status events."""

    def sign_and_submit(self, call_data: bytes, signer_address: str) -> AsyncIterator[StatusEvent]:
        ...


class RpcBroadcaster:
    def __init__(self, client: ChainClient, signer: KeypairSigner, *, tip: int = 0) -> None:
        self._client = client
        self._signer = signer
        self._tip = tip

    async def _signing_context(self, signer_address: str) -> SigningContext:
        runtime = await self._client.runtime_version()
        genesis = await self._client.genesis_hash()
        nonce = await self._client.account_next_index(signer_address)
        return SigningContext(
            genesis_hash=from_hex(genesis),
            spec_version=int(runtime["specVersion"]),
            transaction_version=int(runtime["transactionVersion"]),
            nonce=nonce,
            tip=self._tip,
        )

    async def sign_and_submit(self, call_data: bytes, signer_address: str) -> AsyncIterator[StatusEvent]:
        context = await self._signing_context(signer_address)
        signature = self._signer.sign(signer_address, signing_payload(call_data, context))
        extrinsic = encode_signed_extrinsic(call_data, decode_address(signer_address), signature, context)
        tx_hash = extrinsic_hash(extrinsic)
        logger.info("Submitting extrinsic %s (nonce %s) from %s", tx_hash, context.nonce, signer_address)
        async with aclosing(self._client.submit_and_watch(extrinsic, tx_hash)) as events:
            async for event in events:
                yield event
