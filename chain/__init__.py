from .address import (
    check_address,
    decode_address,
    derive_multisig_account,
    encode_address,
    reencode,
    same_account,
    validate_address,
)
from .broadcast import Broadcaster, RpcBroadcaster
from .context import ChainContext, ChainReference, load_chain_context, offline_context, pinned_reference
from .events import EventKind, StatusEvent, error_event, event_from_rpc
from .rpc import ChainClient, RpcClient, open_rpc_client
from .signer import KeypairSigner

__all__ = [
    "check_address",
    "decode_address",
    "derive_multisig_account",
    "encode_address",
    "reencode",
    "same_account",
    "validate_address",
    "Broadcaster",
    "RpcBroadcaster",
    "ChainContext",
    "ChainReference",
    "load_chain_context",
    "offline_context",
    "pinned_reference",
    "EventKind",
    "StatusEvent",
    "error_event",
    "event_from_rpc",
    "ChainClient",
    "RpcClient",
    "open_rpc_client",
    "KeypairSigner",
]
