"""Dependency wiring helpers for the time release transfer helper."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import trio

import config
from activity_log import ActivityLog
from chain.broadcast import RpcBroadcaster
from chain.context import ChainContext, offline_context
from chain.signer import KeypairSigner
from errors import DependencyError
from ledger import SessionLedger
from submission import InFlightTracker, Submitter


@dataclass
class ServiceContainer:
    """Simple dependency container to ease testing and wiring."""

    settings: config.Settings
    logger: logging.Logger
    ledger: SessionLedger
    activity: ActivityLog
    tracker: InFlightTracker
    overrides: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        settings: Optional[config.Settings] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ServiceContainer":
        resolved_settings = settings or config.settings
        override_map = overrides or {}

        logger: logging.Logger = override_map.get("logger") or logging.getLogger("app.helper")
        # Empty ledgers and logs are falsy, so test for presence explicitly.
        ledger = override_map.get("ledger")
        activity = override_map.get("activity")
        tracker = override_map.get("tracker")

        return cls(
            settings=resolved_settings,
            logger=logger,
            ledger=ledger if ledger is not None else SessionLedger(),
            activity=activity if activity is not None else ActivityLog(),
            tracker=tracker if tracker is not None else InFlightTracker(),
            overrides=override_map,
        )

    def offline_context(self, prefix: Optional[int] = None) -> ChainContext:
        return offline_context(self.settings.chain, prefix)

    def build_signer(self, context: ChainContext, seeds: Optional[list] = None) -> KeypairSigner:
        signer = self.overrides.get("signer")
        if signer is not None:
            return signer
        return KeypairSigner.from_seeds(seeds or [], context.address_prefix)

    def build_submitter(
        self,
        context: ChainContext,
        *,
        client: Any = None,
        signer: Optional[KeypairSigner] = None,
        nursery: Optional[trio.Nursery] = None,
    ) -> Submitter:
        broadcaster = self.overrides.get("broadcaster")
        if broadcaster is None:
            if client is None or signer is None:
                raise DependencyError("A chain client and a signer are needed to build the broadcaster")
            broadcaster = RpcBroadcaster(client, signer, tip=self.settings.submission.tip)

        submitter = Submitter(
            context,
            broadcaster,
            ledger=self.ledger,
            activity=self.activity,
            tracker=self.tracker,
            pallets=self.settings.pallets,
            submission_settings=self.settings.submission,
        )
        if nursery is not None:
            submitter.set_nursery(nursery)
        return submitter

    def clear_session(self) -> None:
        self.ledger.clear()
        self.activity.clear()
        self.logger.info("Session cleared")
