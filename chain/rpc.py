"""
JSON-RPC client for a Substrate node over a websocket.

One reader task owns the socket and routes every incoming message: replies
go to the waiting request by id, subscription notifications go to the
channel registered for that subscription.
"""

from __future__ import annotations

import itertools
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import trio
import trio_websocket

from errors import BroadcastFailed, RpcError, RuntimeCallError

from .address import decode_address
from .events import StatusEvent, event_from_rpc
from .scale import blake2_128, from_hex, to_hex

logger = logging.getLogger(__name__)

# twox128("Timestamp") ++ twox128("Now")
TIMESTAMP_NOW_KEY = "0xf0c365c3cf59d671eb72da0e7a4113c49f1f0515f462cdcf84e0f1d6045dfcbb"

# twox128("System") ++ twox128("Account"); the map key is blake2_128_concat(account id).
SYSTEM_ACCOUNT_PREFIX = "0x26aa394eea5630e07c48ae0c9558cef7b99d880ec681799c0cf30e8886371da9"

# AccountInfo: nonce, consumers, providers, sufficients (u32 each), then data.free (u128).
_FREE_BALANCE_OFFSET = 16
_BALANCE_LENGTH = 16

# Invalid / unknown transaction: the runtime's validity check refused the call.
_RUNTIME_REJECTION_CODES = (1010, 1011)

_SUBSCRIPTION_BUFFER = 64


def account_storage_key(account_id: bytes) -> str:
    """Storage key of the System.Account entry for a 32-byte account id."""
    return SYSTEM_ACCOUNT_PREFIX + (blake2_128(account_id) + account_id).hex()


class ChainClient(Protocol):
    """The node queries the helper relies on."""

    async def system_properties(self) -> Dict[str, Any]: ...

    async def current_block(self) -> int: ...

    async def timestamp_now(self) -> int: ...

    async def genesis_hash(self) -> str: ...

    async def runtime_version(self) -> Dict[str, Any]: ...

    async def account_next_index(self, address: str) -> int: ...

    async def free_balance(self, address: str) -> int: ...

    def submit_and_watch(self, extrinsic: bytes, tx_hash: Optional[str] = None) -> AsyncIterator[StatusEvent]: ...


class RpcClient:
    def __init__(self, ws: Any, *, request_timeout: float = 30.0) -> None:
        self._ws = ws
        self._request_timeout = request_timeout
        self._ids = itertools.count(1)
        self._pending: Dict[int, trio.MemorySendChannel] = {}
        self._subscriptions: Dict[str, trio.MemorySendChannel] = {}
        # Notifications that raced ahead of their subscription reply.
        self._orphans: Dict[str, List[Any]] = {}
        self._closed = False

    # --- transport ---

    async def _reader(self) -> None:
        try:
            while True:
                raw = await self._ws.get_message()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON message from node: %r", raw[:200])
                    continue
                self._dispatch(message)
        except trio_websocket.ConnectionClosed:
            logger.info("RPC connection closed")
        finally:
            self._close_all()

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if "id" in message and message.get("id") is not None:
            channel = self._pending.pop(message["id"], None)
            if channel is None:
                logger.debug("Reply for unknown request id %s", message["id"])
                return
            try:
                channel.send_nowait(message)
            except (trio.WouldBlock, trio.BrokenResourceError):
                logger.debug("Dropped reply for request id %s", message["id"])
            return

        params = message.get("params")
        if not isinstance(params, dict) or "subscription" not in params:
            logger.debug("Ignoring unexpected message: %s", message)
            return
        sub_id = str(params["subscription"])
        result = params.get("result")
        channel = self._subscriptions.get(sub_id)
        if channel is None:
            self._orphans.setdefault(sub_id, []).append(result)
            return
        try:
            channel.send_nowait(result)
        except trio.WouldBlock:
            logger.warning("Subscription %s is not keeping up; dropping update", sub_id)
        except trio.BrokenResourceError:
            self._subscriptions.pop(sub_id, None)

    def _close_all(self) -> None:
        self._closed = True
        for channel in list(self._pending.values()):
            channel.close()
        self._pending.clear()
        for channel in list(self._subscriptions.values()):
            channel.close()
        self._subscriptions.clear()

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self._closed:
            raise RpcError(f"RPC connection closed before {method}")
        request_id = next(self._ids)
        send_channel, receive_channel = trio.open_memory_channel(1)
        self._pending[request_id] = send_channel
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}
        try:
            await self._ws.send_message(json.dumps(payload))
            with trio.fail_after(self._request_timeout):
                reply = await receive_channel.receive()
        except trio.TooSlowError as exc:
            raise RpcError(f"{method} timed out after {self._request_timeout}s") from exc
        except (trio.EndOfChannel, trio_websocket.ConnectionClosed) as exc:
            raise RpcError(f"RPC connection closed during {method}") from exc
        finally:
            self._pending.pop(request_id, None)

        error = reply.get("error")
        if error:
            raise RpcError(
                str(error.get("message", "RPC error")),
                code=error.get("code"),
                data=None if error.get("data") is None else str(error.get("data")),
            )
        return reply.get("result")

    def _register_subscription(self, sub_id: str) -> trio.MemoryReceiveChannel:
        send_channel, receive_channel = trio.open_memory_channel(_SUBSCRIPTION_BUFFER)
        for result in self._orphans.pop(sub_id, []):
            send_channel.send_nowait(result)
        self._subscriptions[sub_id] = send_channel
        return receive_channel

    # --- chain queries ---

    async def system_properties(self) -> Dict[str, Any]:
        return await self.request("system_properties") or {}

    async def current_block(self) -> int:
        header = await self.request("chain_getHeader")
        if not header or "number" not in header:
            raise RpcError("chain_getHeader returned no block number")
        return int(header["number"], 16)

    async def timestamp_now(self) -> int:
        """Milliseconds since the epoch as stored by the Timestamp pallet."""
        raw = await self.request("state_getStorage", [TIMESTAMP_NOW_KEY])
        if not raw:
            raise RpcError("Timestamp.now is not available on this chain")
        return int.from_bytes(bytes.fromhex(raw[2:]), "little")

    async def genesis_hash(self) -> str:
        return await self.request("chain_getBlockHash", [0])

    async def runtime_version(self) -> Dict[str, Any]:
        return await self.request("state_getRuntimeVersion")

    async def account_next_index(self, address: str) -> int:
        return int(await self.request("system_accountNextIndex", [address]))

    async def free_balance(self, address: str) -> int:
        """Free balance of `address` in planck; an account never seen on chain holds 0."""
        raw = await self.request("state_getStorage", [account_storage_key(decode_address(address))])
        if not raw:
            return 0
        data = from_hex(raw)
        if len(data) < _FREE_BALANCE_OFFSET + _BALANCE_LENGTH:
            raise RpcError(f"System.Account entry for {address} is too short: {len(data)} bytes")
        return int.from_bytes(data[_FREE_BALANCE_OFFSET:_FREE_BALANCE_OFFSET + _BALANCE_LENGTH], "little")

    async def submit_and_watch(self, extrinsic: bytes, tx_hash: Optional[str] = None) -> AsyncIterator[StatusEvent]:
        """Submit a signed extrinsic and yield its status events until terminal."""
        try:
            sub_id = await self.request("author_submitAndWatchExtrinsic", [to_hex(extrinsic)])
        except RpcError as exc:
            reason = str(exc) if not exc.data else f"{exc}: {exc.data}"
            if exc.code in _RUNTIME_REJECTION_CODES:
                raise RuntimeCallError(reason) from exc
            raise BroadcastFailed(reason) from exc

        sub_id = str(sub_id)
        updates = self._register_subscription(sub_id)
        terminal = False
        try:
            async for result in updates:
                event = event_from_rpc(result, tx_hash)
                yield event
                if event.is_terminal:
                    terminal = True
                    break
        finally:
            self._subscriptions.pop(sub_id, None)
            if not terminal and not self._closed:
                try:
                    await self.request("author_unwatchExtrinsic", [sub_id])
                except RpcError:
                    logger.debug("Failed to unwatch subscription %s", sub_id, exc_info=True)


@asynccontextmanager
async def open_rpc_client(
    url: str,
    nursery: trio.Nursery,
    *,
    request_timeout: float = 30.0,
) -> AsyncIterator[RpcClient]:
    """Connect to `url`; the reader task runs in the caller's nursery."""
    try:
        async with trio_websocket.open_websocket_url(url) as ws:
            client = RpcClient(ws, request_timeout=request_timeout)
            nursery.start_soon(client._reader)
            yield client
    except (OSError, trio_websocket.HandshakeError) as exc:
        raise RpcError(f"Unable to connect to {url}: {exc}") from exc
