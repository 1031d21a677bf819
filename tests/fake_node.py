"""In-process websocket node answering the JSON-RPC methods the helper uses."""
import json
from datetime import datetime, timezone

import trio_websocket

from chain.rpc import SYSTEM_ACCOUNT_PREFIX, TIMESTAMP_NOW_KEY

GENESIS = "0x" + "11" * 32
NOW_MS = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)


def account_info(free: int, nonce: int = 0) -> bytes:
    """SCALE AccountInfo: nonce, consumers, providers, sufficients, then free, reserved, frozen, flags."""
    header = nonce.to_bytes(4, "little") + (0).to_bytes(4, "little") + (1).to_bytes(4, "little") + bytes(4)
    return header + free.to_bytes(16, "little") + bytes(16) * 3


class FakeNode:
    """Answers the handful of JSON-RPC methods the helper uses."""

    def __init__(self, updates=("ready", {"inBlock": "0xb1"}, {"finalized": "0xb2"}), reject=None, balances=None):
        # free balance in planck keyed by 32-byte account id
        self.balances = dict(balances or {})
        self.updates = list(updates)
        self.reject = reject
        self.extrinsics = []
        self.methods = []

    def result_for(self, method, params):
        if method == "system_properties":
            return {"ss58Format": 42, "tokenSymbol": ["UNIT"], "tokenDecimals": [12]}
        if method == "chain_getBlockHash":
            return GENESIS
        if method == "chain_getHeader":
            return {"number": hex(1000)}
        if method == "state_getStorage" and params == [TIMESTAMP_NOW_KEY]:
            return "0x" + NOW_MS.to_bytes(8, "little").hex()
        if method == "state_getStorage" and params[0].startswith(SYSTEM_ACCOUNT_PREFIX):
            account_id = bytes.fromhex(params[0][-64:])
            if account_id not in self.balances:
                return None
            return "0x" + account_info(self.balances[account_id]).hex()
        if method == "state_getRuntimeVersion":
            return {"specVersion": 100, "transactionVersion": 2}
        if method == "system_accountNextIndex":
            return 7
        raise KeyError(method)

    async def handler(self, request):
        ws = await request.accept()
        try:
            while True:
                message = json.loads(await ws.get_message())
                method, params = message["method"], message["params"]
                self.methods.append(method)
                reply = {"jsonrpc": "2.0", "id": message["id"]}
                if method == "author_submitAndWatchExtrinsic":
                    self.extrinsics.append(params[0])
                    if self.reject is not None:
                        reply["error"] = self.reject
                        await ws.send_message(json.dumps(reply))
                        continue
                    reply["result"] = "sub-1"
                    await ws.send_message(json.dumps(reply))
                    for update in self.updates:
                        await ws.send_message(
                            json.dumps(
                                {
                                    "jsonrpc": "2.0",
                                    "method": "author_extrinsicUpdate",
                                    "params": {"subscription": "sub-1", "result": update},
                                }
                            )
                        )
                    continue
                try:
                    reply["result"] = self.result_for(method, params)
                except KeyError:
                    reply["error"] = {"code": -32601, "message": "Method not found"}
                await ws.send_message(json.dumps(reply))
        except trio_websocket.ConnectionClosed:
            pass


async def start_node(nursery, node):
    server = await nursery.start(trio_websocket.serve_websocket, node.handler, "127.0.0.1", 0, None)
    return f"ws://127.0.0.1:{server.port}"
