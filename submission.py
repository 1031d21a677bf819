"""
Transfer submission state machine.

A transfer is built into a call (Building), recorded in the session ledger
under its call fingerprint and handed to the broadcaster (Submitting), then
driven by the status events the broadcaster yields, in arrival order:

    Sending -> Sent / Broadcast / InBlock (any order, any subset) -> Finalized
                                                                  -> Error

Finalized and Error are terminal; anything arriving afterwards is ignored.
The first event that carries a transaction hash moves the ledger record from
the fingerprint key to the hash. A stream that never reaches a terminal
state keeps its submission in flight unless a status timeout is configured.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Set

import trio

from activity_log import ActivityLog
from chain.address import check_address, decode_address, encode_address, same_account
from chain.broadcast import Broadcaster
from chain.context import ChainContext
from chain.events import EventKind, StatusEvent, error_event
from chain.scale import (
    ReleaseSchedule,
    Weight,
    blake2_256,
    encode_as_multi_call,
    encode_transfer_call,
    to_hex,
)
from config import PalletSettings, SubmissionSettings
from errors import DependencyError, MultisigSetupError, TransferHelperError, ValidationError
from ledger import SessionLedger, Status, SubmissionRecord
from multisig import MultisigConfig, sorted_other_signatories
from utils import format_amount, format_balance

logger = logging.getLogger(__name__)

RELEASE_PERIOD = 1
RELEASE_PERIOD_COUNT = 1
_MAX_BLOCK = 2**32 - 1

_STATUS_FOR_EVENT = {
    EventKind.FUTURE: Status.SENT,
    EventKind.READY: Status.SENT,
    EventKind.BROADCAST: Status.BROADCAST,
    EventKind.RETRACTED: Status.BROADCAST,
    EventKind.IN_BLOCK: Status.IN_BLOCK,
    EventKind.FINALIZED: Status.FINALIZED,
    EventKind.FINALITY_TIMEOUT: Status.ERROR,
    EventKind.USURPED: Status.ERROR,
    EventKind.DROPPED: Status.ERROR,
    EventKind.INVALID: Status.ERROR,
    EventKind.ERROR: Status.ERROR,
}


class SubmissionMode(str, Enum):
    DIRECT = "direct"
    MULTISIG = "multisig"


@dataclass(frozen=True)
class TransferCall:
    """Release `amount_planck` to `recipient` once, at `unlock_block`."""

    recipient: str
    amount_planck: int
    unlock_block: int

    def __post_init__(self) -> None:
        if self.amount_planck < 0:
            raise ValidationError("Transfer amount cannot be negative")
        if self.unlock_block < 0:
            raise ValidationError("Unlock block cannot be negative")
        if self.unlock_block > _MAX_BLOCK:
            raise ValidationError(f"Unlock block {self.unlock_block} is beyond the chain's block range")

    @property
    def schedule_start(self) -> int:
        return self.unlock_block

    @property
    def period(self) -> int:
        return RELEASE_PERIOD

    @property
    def period_count(self) -> int:
        return RELEASE_PERIOD_COUNT

    def schedule(self) -> ReleaseSchedule:
        return ReleaseSchedule(
            start=self.schedule_start,
            period=self.period,
            period_count=self.period_count,
            per_period=self.amount_planck,
        )


@dataclass(frozen=True)
class PreparedCall:
    transfer: TransferCall
    mode: SubmissionMode
    sender: str
    recipient: str
    # The call handed to the signer; the multisig wrapper in multisig mode.
    call_data: bytes
    transfer_call_data: bytes
    call_hash: str
    multisig: Optional[MultisigConfig] = None

    @property
    def account(self) -> str:
        """The account the funds leave from."""
        if self.multisig is not None and self.multisig.derived_address:
            return self.multisig.derived_address
        return self.sender


def build_call(
    transfer: TransferCall,
    context: ChainContext,
    *,
    sender: str,
    pallets: PalletSettings,
    mode: SubmissionMode = SubmissionMode.DIRECT,
    multisig: Optional[MultisigConfig] = None,
    max_weight: Optional[Weight] = None,
) -> PreparedCall:
    """Validate the inputs and encode the call. Raises ValidationError subclasses."""
    prefix = context.address_prefix
    recipient_id = check_address(transfer.recipient, prefix)
    check_address(sender, prefix)

    inner = encode_transfer_call(
        pallets.time_release_pallet,
        pallets.time_release_transfer_call,
        recipient_id,
        transfer.schedule(),
    )

    if mode == SubmissionMode.MULTISIG:
        if multisig is None:
            raise MultisigSetupError([], "multisig mode needs a resolved multisig config")
        multisig.require_valid()
        if not any(same_account(sender, member) for member in multisig.signatories):
            raise MultisigSetupError([], f"sender {sender} is not one of the signatories")
        if max_weight is None:
            raise DependencyError("Multisig submissions need a max weight budget")
        others = [decode_address(address) for address in sorted_other_signatories(multisig, sender)]
        call_data = encode_as_multi_call(
            pallets.multisig_pallet,
            pallets.multisig_as_multi_call,
            multisig.threshold,
            others,
            inner,
            max_weight,
        )
    else:
        multisig = None
        call_data = inner

    return PreparedCall(
        transfer=transfer,
        mode=mode,
        sender=sender,
        recipient=encode_address(recipient_id, prefix),
        call_data=call_data,
        transfer_call_data=inner,
        call_hash=to_hex(blake2_256(inner)),
        multisig=multisig,
    )


class InFlightTracker:
    """The "operation in progress" indicator, shared by every submission."""

    def __init__(self) -> None:
        self._active: Set[int] = set()

    def engage(self, submission: "Submission") -> None:
        self._active.add(id(submission))

    def release(self, submission: "Submission") -> None:
        self._active.discard(id(submission))

    @property
    def busy(self) -> bool:
        return bool(self._active)

    @property
    def active(self) -> int:
        return len(self._active)


class Submission:
    """Live handle for one submitted call."""

    def __init__(
        self,
        prepared: PreparedCall,
        record: SubmissionRecord,
        *,
        ledger: SessionLedger,
        activity: ActivityLog,
        tracker: InFlightTracker,
    ) -> None:
        self.prepared = prepared
        self._record = record
        self._ledger = ledger
        self._activity = activity
        self._tracker = tracker
        self._tx_hash: Optional[str] = None
        self._subscribers: List[trio.MemorySendChannel] = []
        self._terminal = trio.Event()
        self._settled = trio.Event()

    @property
    def record(self) -> SubmissionRecord:
        return self._record

    @property
    def key(self) -> str:
        return self._record.key

    @property
    def tx_hash(self) -> Optional[str]:
        return self._tx_hash

    @property
    def done(self) -> bool:
        return self._record.status.is_terminal

    def subscribe(self, buffer: int = 16) -> trio.MemoryReceiveChannel:
        """Stream of record snapshots; closing the receiver unsubscribes."""
        send_channel, receive_channel = trio.open_memory_channel(buffer)
        if self.done:
            send_channel.send_nowait(self._record)
            send_channel.close()
        else:
            self._subscribers.append(send_channel)
        return receive_channel

    async def wait_terminal(self) -> SubmissionRecord:
        await self._terminal.wait()
        return self._record

    async def wait_settled(self) -> SubmissionRecord:
        """Wait until the record is terminal or its status stream has ended."""
        await self._settled.wait()
        return self._record

    def _mark_settled(self) -> None:
        self._settled.set()

    def apply_event(self, event: StatusEvent) -> bool:
        """Apply one status event. Returns False if it was ignored."""
        if self.done:
            logger.debug("Ignoring %s for %s: already %s", event.kind.value, self.key, self._record.status.value)
            return False

        if event.tx_hash and self._tx_hash is None:
            self._promote(event.tx_hash)

        status = _STATUS_FOR_EVENT[event.kind]
        changes: dict = {"status": status}
        if status == Status.FINALIZED:
            changes["finalized_block"] = event.block_ref or self._record.finalized_block
        if status == Status.ERROR:
            changes["error"] = event.message or event.kind.value
        self._record = replace(self._record, **changes)
        self._ledger.update(self._record.key, self._record)
        self._log_event(event)
        self._publish()

        if status.is_terminal:
            self._finish()
        return True

    def fail(self, message: str) -> bool:
        return self.apply_event(error_event(message, tx_hash=self._tx_hash))

    def _promote(self, tx_hash: str) -> None:
        old_key = self._record.key
        self._tx_hash = tx_hash
        self._record = replace(self._record, key=tx_hash)
        if not self._ledger.promote_key(old_key, tx_hash):
            # The ledger was cleared while this submission was in flight.
            self._ledger.update(tx_hash, self._record)

    def _log_event(self, event: StatusEvent) -> None:
        label = self._record.label
        tx = self._tx_hash or self._record.key
        if event.kind == EventKind.IN_BLOCK:
            self._activity.add(f"Transaction {tx} included at block hash {event.block_ref}", label)
        elif event.kind == EventKind.FINALIZED:
            self._activity.add(f"Transaction {tx} finalized at block hash {event.block_ref}", label)
        elif self._record.status == Status.ERROR:
            self._activity.add(f"Transaction error: {self._record.error}", label)
        else:
            self._activity.add(f"Transaction status: {event.describe()}", label)

    def _publish(self) -> None:
        for channel in list(self._subscribers):
            try:
                channel.send_nowait(self._record)
            except trio.WouldBlock:
                logger.warning("Subscriber for %s is not keeping up; dropping update", self.key)
            except (trio.BrokenResourceError, trio.ClosedResourceError):
                self._subscribers.remove(channel)

    def _finish(self) -> None:
        self._tracker.release(self)
        for channel in self._subscribers:
            channel.close()
        self._subscribers.clear()
        self._terminal.set()
        self._settled.set()


class Submitter:
    def __init__(
        self,
        context: ChainContext,
        broadcaster: Broadcaster,
        *,
        ledger: SessionLedger,
        activity: ActivityLog,
        tracker: Optional[InFlightTracker] = None,
        pallets: Optional[PalletSettings] = None,
        submission_settings: Optional[SubmissionSettings] = None,
    ) -> None:
        self.context = context
        self._broadcaster = broadcaster
        self.ledger = ledger
        self.activity = activity
        self.tracker = tracker or InFlightTracker()
        self._pallets = pallets or PalletSettings()
        self._settings = submission_settings or SubmissionSettings()
        self._nursery: Optional[trio.Nursery] = None

    def set_nursery(self, nursery: trio.Nursery) -> None:
        self._nursery = nursery

    @property
    def max_weight(self) -> Weight:
        return Weight(self._settings.max_weight_ref_time, self._settings.max_weight_proof_size)

    def prepare(
        self,
        transfer: TransferCall,
        sender: str,
        *,
        multisig: Optional[MultisigConfig] = None,
    ) -> PreparedCall:
        mode = SubmissionMode.MULTISIG if multisig is not None else SubmissionMode.DIRECT
        return build_call(
            transfer,
            self.context,
            sender=sender,
            pallets=self._pallets,
            mode=mode,
            multisig=multisig,
            max_weight=self.max_weight,
        )

    def _provisional_key(self, call_hash: str) -> str:
        key = call_hash
        attempt = 1
        while key in self.ledger:
            attempt += 1
            key = f"{call_hash}#{attempt}"
        return key

    def _log_sending(self, prepared: PreparedCall, label: str) -> None:
        transfer = prepared.transfer
        lines = [
            "Sending time release",
            f"Recipient: {prepared.recipient}",
            f"Amount: {format_amount(transfer.amount_planck)}",
        ]
        if prepared.multisig is not None:
            lines.append(f"From Multisig: {prepared.multisig.derived_address}")
        lines.extend(
            [
                f"Sender: {prepared.sender}",
                f"Parameters: Start: {transfer.schedule_start}, Period: {transfer.period}, "
                f"Period Count: {transfer.period_count}, Per Period: {transfer.amount_planck}",
                f"Call Hash: {prepared.call_hash}",
                f"Call Data: {to_hex(prepared.transfer_call_data)}",
            ]
        )
        self.activity.add(lines, label)

    def submit(self, prepared: PreparedCall, label: str = "") -> Submission:
        """Record the call under its fingerprint and start watching its status."""
        if self._nursery is None:
            raise DependencyError("Submitter needs a nursery before submitting")

        key = self._provisional_key(prepared.call_hash)
        record = SubmissionRecord(
            key=key,
            label=label,
            recipient=prepared.recipient,
            amount=format_balance(prepared.transfer.amount_planck, self.context.token_decimals),
            sender=prepared.account,
            signer=prepared.sender,
            unlock_block=prepared.transfer.unlock_block,
            call_hash=prepared.call_hash,
            call_data=to_hex(prepared.transfer_call_data),
        )
        self.ledger.insert_provisional(key, record)
        submission = Submission(
            prepared,
            self.ledger.get(key) or record,
            ledger=self.ledger,
            activity=self.activity,
            tracker=self.tracker,
        )
        self.tracker.engage(submission)
        self._log_sending(prepared, label)
        self._nursery.start_soon(self._watch, submission)
        return submission

    async def _watch(self, submission: Submission) -> None:
        timeout = self._settings.status_timeout
        deadline = trio.move_on_after(timeout) if timeout else None
        try:
            with deadline if deadline is not None else contextlib.nullcontext():
                events = self._broadcaster.sign_and_submit(submission.prepared.call_data, submission.prepared.sender)
                async with contextlib.aclosing(events) as stream:
                    async for event in stream:
                        submission.apply_event(event)
                        if submission.done:
                            break
            if not submission.done:
                if deadline is not None and deadline.cancelled_caught:
                    submission.fail(f"No terminal status within {timeout}s")
                else:
                    logger.warning("Status stream for %s ended before a terminal state", submission.key)
        except TransferHelperError as exc:
            logger.warning("Submission %s failed: %s", submission.key, exc)
            submission.fail(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while submitting %s", submission.key)
            submission.fail(f"{type(exc).__name__}: {exc}")
        finally:
            submission._mark_settled()
