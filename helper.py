#!/usr/bin/env python3
"""
Time Release Transfer Helper console.

Features:
- Estimate the unlock block for a calendar date
- Resolve a multisig account and its co-signer order
- Show an amount in whole and milli units
- Generate a development keypair and query an account's free balance
- Send a time release transfer (direct or as a multisig proposal)
"""

import argparse
import logging
import sys
from typing import List, Optional

import trio

import config
import release_logging
from app.container import ServiceContainer
from chain.address import reencode
from chain.context import load_chain_context
from chain.rpc import open_rpc_client
from chain.signer import KeypairSigner, generate_seed
from errors import TransferHelperError, ValidationError
from estimator import resolve_unlock_target
from ledger import ExportScope
from multisig import resolve, sorted_other_signatories
from submission import TransferCall
from utils import format_balance, parse_transfer_row, unit_values

logger = logging.getLogger("helper")


def _parse_seed(seed_str: str) -> bytes:
    """
    Parse an Ed25519 seed given as 64 hex digits (with or without '0x')
    or as a decimal integer.
    """
    s = seed_str.strip()
    if s.lower().startswith('0x') or any(c in s for c in 'abcdefABCDEF'):
        h = s[2:] if s.lower().startswith('0x') else s
        raw = bytes.fromhex(h)
        if len(raw) != 32:
            raise ValueError(f"Invalid seed length: {len(raw)} bytes, expected 32.")
        return raw
    n = int(s, 10)
    if n < 0 or n >= 1 << (8 * 32):
        raise ValueError("Seed integer out of range for 32 bytes.")
    return n.to_bytes(32, 'big')


def cmd_estimate(args, container):
    context = container.offline_context(args.prefix)
    target = resolve_unlock_target(args.date, context)
    print(f"Unlock date: {target.calendar_date.isoformat()}")
    print(f"Estimated block: {target.resolved_block}")


def cmd_multisig(args, container):
    prefix = args.prefix if args.prefix is not None else container.settings.chain.default_prefix
    multisig_config = resolve(args.threshold, args.signatory or [], args.sender, prefix=prefix)
    for issue in multisig_config.issues:
        print(f"Warning: {issue}")
    print(f"Multisig address: {multisig_config.derived_address}")
    print(f"Threshold: {multisig_config.threshold} of {len(multisig_config.signatories)}")
    if args.sender:
        print("Other signatories (submission order):")
        for address in sorted_other_signatories(multisig_config, args.sender):
            print(f"  {address}")


def cmd_units(args, container):
    decimals = args.decimals if args.decimals is not None else container.settings.chain.default_decimals
    symbol = args.symbol or container.settings.chain.default_symbol
    unit, milli = unit_values(args.amount, decimals, symbol)
    print(unit)
    print(milli)


def cmd_new(args, container):
    prefix = args.prefix if args.prefix is not None else container.settings.chain.default_prefix
    seed = generate_seed()
    address = KeypairSigner(prefix).add_seed(seed)
    print(f"Seed (hex): 0x{seed.hex()}")
    print(f"Address: {address}")


async def _balance(args, container):
    seed = _parse_seed(args.seed) if args.seed else None
    endpoint = args.endpoint or container.settings.rpc.endpoint
    error: Optional[TransferHelperError] = None
    result = None

    async with trio.open_nursery() as nursery:
        try:
            async with open_rpc_client(
                endpoint, nursery, request_timeout=container.settings.rpc.request_timeout
            ) as client:
                context = await load_chain_context(client, container.settings.chain, endpoint)
                if args.address:
                    address = reencode(args.address, context.address_prefix)
                else:
                    address = container.build_signer(context, [seed]).addresses()[0]
                planck = await client.free_balance(address)
                result = (address, planck, context)
        except TransferHelperError as exc:
            error = exc

    if error is not None:
        raise error
    return result


def cmd_balance(args, container):
    address, planck, context = trio.run(_balance, args, container)
    print(f"Account: {address}")
    print(f"Free balance: {format_balance(planck, context.token_decimals)} {context.token_symbol}")


def _transfer_inputs(args):
    if args.row:
        row = parse_transfer_row(args.row.replace("\\t", "\t"))
        if row is None:
            raise ValidationError("Row must hold label, recipient, amount and date separated by tabs")
        return row.label, row.recipient, row.amount, row.unlock_date
    missing = [name for name in ("recipient", "amount", "date") if getattr(args, name) is None]
    if missing:
        raise ValidationError(f"Missing transfer fields: {', '.join(missing)} (or use --row)")
    return args.label or "", args.recipient, args.amount, args.date


async def _send(args, container):
    label, recipient, amount, unlock_date = _transfer_inputs(args)
    seed = _parse_seed(args.seed)
    endpoint = args.endpoint or container.settings.rpc.endpoint
    error: Optional[TransferHelperError] = None
    record = None

    async with trio.open_nursery() as nursery:
        try:
            async with open_rpc_client(
                endpoint, nursery, request_timeout=container.settings.rpc.request_timeout
            ) as client:
                context = await load_chain_context(client, container.settings.chain, endpoint)
                signer = container.build_signer(context, [seed])
                sender = signer.addresses()[0]
                target = resolve_unlock_target(unlock_date, context)

                multisig_config = None
                if args.signatory:
                    multisig_config = resolve(args.threshold, args.signatory, sender, prefix=context.address_prefix)

                submitter = container.build_submitter(context, client=client, signer=signer, nursery=nursery)
                prepared = submitter.prepare(
                    TransferCall(recipient=recipient, amount_planck=amount, unlock_block=target.resolved_block),
                    sender,
                    multisig=multisig_config,
                )
                submission = submitter.submit(prepared, label)
                record = await submission.wait_settled()
        except TransferHelperError as exc:
            error = exc

    for line in container.activity.render():
        print(line)
    if error is not None:
        raise error
    return record


def cmd_send(args, container):
    record = trio.run(_send, args, container)
    if args.export:
        scope = ExportScope(args.scope)
        with open(args.export, "w", encoding="utf-8") as handle:
            handle.write(container.ledger.export_tsv(scope) + "\n")
        print(f"Ledger exported to {args.export}")
    if record is not None:
        print(f"Status: {record.status.value}" + (f" ({record.error})" if record.error else ""))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="helper", description="Time Release Transfer Helper")
    sub = parser.add_subparsers(dest="command", required=True)

    p_est = sub.add_parser("estimate", help="Estimate the unlock block for a date")
    p_est.add_argument("--date", "-d", required=True, help="Unlock date (YYYY-MM-DD)")
    p_est.add_argument("--prefix", type=int, help="SS58 prefix of the chain (defaults to settings)")
    p_est.set_defaults(func=cmd_estimate)

    p_ms = sub.add_parser("multisig", help="Resolve a multisig account")
    p_ms.add_argument("--threshold", "-t", type=int, required=True, help="Approvals required")
    p_ms.add_argument("--signatory", "-s", action="append", help="Signatory address (repeatable)")
    p_ms.add_argument("--sender", help="Initiating signatory, added to the set")
    p_ms.add_argument("--prefix", type=int, help="SS58 prefix of the chain (defaults to settings)")
    p_ms.set_defaults(func=cmd_multisig)

    p_units = sub.add_parser("units", help="Show a planck amount in whole and milli units")
    p_units.add_argument("--amount", "-m", type=int, required=True, help="Amount in planck")
    p_units.add_argument("--decimals", type=int, help="Token decimals")
    p_units.add_argument("--symbol", help="Token symbol")
    p_units.set_defaults(func=cmd_units)

    p_new = sub.add_parser("new", help="Generate a development Ed25519 keypair")
    p_new.add_argument("--prefix", type=int, help="SS58 prefix of the chain (defaults to settings)")
    p_new.set_defaults(func=cmd_new)

    p_bal = sub.add_parser("balance", help="Show the free balance of an account")
    p_bal.add_argument("--endpoint", "-e", help="Node websocket endpoint")
    who = p_bal.add_mutually_exclusive_group(required=True)
    who.add_argument("--address", "-a", help="Account address")
    who.add_argument("--seed", "-k", help="Ed25519 seed of the account (hex or decimal)")
    p_bal.set_defaults(func=cmd_balance)

    p_send = sub.add_parser("send", help="Send a time release transfer")
    p_send.add_argument("--endpoint", "-e", help="Node websocket endpoint")
    p_send.add_argument("--seed", "-k", required=True, help="Ed25519 seed of the sender (hex or decimal)")
    p_send.add_argument("--recipient", "-r", help="Recipient address")
    p_send.add_argument("--amount", "-m", type=int, help="Amount in planck")
    p_send.add_argument("--date", "-d", help="Unlock date (YYYY-MM-DD)")
    p_send.add_argument("--label", "-l", help="Label for the log and ledger")
    p_send.add_argument("--row", help="Tab separated 'label, recipient, amount, date' row")
    p_send.add_argument("--threshold", "-t", type=int, default=1, help="Multisig threshold")
    p_send.add_argument("--signatory", "-s", action="append", help="Other multisig signatory (repeatable)")
    p_send.add_argument("--export", help="Write the session ledger as TSV to this path")
    p_send.add_argument("--scope", choices=[scope.value for scope in ExportScope], default="all")
    p_send.set_defaults(func=cmd_send)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    release_logging.configure(config.LOGGING, force=False)
    container = ServiceContainer.build()
    try:
        args.func(args, container)
    except TransferHelperError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
