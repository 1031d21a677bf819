import pytest

import helper
from accounts import ALICE, ALICE_ID, BOB, address
from app.container import ServiceContainer
from chain.address import check_address, decode_address, reencode
from chain.signer import KeypairSigner
from fake_node import FakeNode, start_node
from ledger import Status

SEED = "0x" + "01" * 32


def test_estimate_prints_block(capsys):
    assert helper.main(["estimate", "--date", "2040-01-01", "--prefix", "42"]) == 0
    out = capsys.readouterr().out
    assert "Unlock date: 2040-01-01" in out
    assert "Estimated block:" in out


def test_estimate_for_unknown_chain_fails(capsys):
    assert helper.main(["estimate", "--date", "2040-01-01", "--prefix", "7"]) == 1
    assert "Unable to find relay chain date data for prefix 7" in capsys.readouterr().err


def test_multisig_lists_other_signatories(capsys):
    charlie = address("charlie")
    assert helper.main(["multisig", "-t", "2", "-s", BOB, "-s", charlie, "--sender", ALICE]) == 0
    out = capsys.readouterr().out
    assert "Multisig address:" in out
    assert "Threshold: 2 of 3" in out
    assert ALICE not in out.split("Other signatories")[1]


def test_multisig_threshold_error(capsys):
    assert helper.main(["multisig", "-t", "3", "-s", ALICE, "-s", BOB]) == 1
    assert "exceeds the number of signatories" in capsys.readouterr().err


def test_units(capsys):
    assert helper.main(["units", "-m", "123456789", "--decimals", "8", "--symbol", "UNIT"]) == 0
    assert capsys.readouterr().out.splitlines() == ["1.23456789 UNIT", "1234.56789 mUNIT"]


def test_send_requires_transfer_fields(capsys):
    assert helper.main(["send", "--seed", SEED, "--recipient", BOB]) == 1
    assert "Missing transfer fields: amount, date" in capsys.readouterr().err


def test_parse_seed_forms():
    assert helper._parse_seed(SEED) == b"\x01" * 32
    assert helper._parse_seed("1") == (1).to_bytes(32, "big")
    with pytest.raises(ValueError):
        helper._parse_seed("0x1234")


@pytest.mark.trio
async def test_send_direct_transfer_end_to_end(nursery):
    node = FakeNode()
    url = await start_node(nursery, node)
    args = helper.build_parser().parse_args(
        ["send", "-e", url, "-k", SEED, "--row", "Grant\\t" + BOB + "\\t1,000\\t2040-01-01"]
    )
    container = ServiceContainer.build()

    record = await helper._send(args, container)

    assert record.status == Status.FINALIZED
    assert record.label == "Grant"
    assert record.amount == "0.000000001000"
    assert container.ledger.keys() == [record.key]
    assert record.key.startswith("0x") and record.key != record.call_hash
    assert len(node.extrinsics) == 1


@pytest.mark.trio
async def test_send_multisig_proposal(nursery):
    node = FakeNode()
    url = await start_node(nursery, node)
    args = helper.build_parser().parse_args(
        ["send", "-e", url, "-k", SEED, "-r", BOB, "-m", "500", "-d", "2040-01-01",
         "-t", "2", "-s", BOB, "-s", address("charlie")]
    )
    container = ServiceContainer.build()

    record = await helper._send(args, container)

    assert record.status == Status.FINALIZED
    assert record.sender != record.signer
    assert bytes([30, 1]) + (2).to_bytes(2, "little") in bytes.fromhex(node.extrinsics[0][2:])


@pytest.mark.trio
async def test_send_runtime_rejection_is_recorded(nursery):
    node = FakeNode(reject={"code": 1010, "message": "Invalid Transaction", "data": "Inability to pay some fees"})
    url = await start_node(nursery, node)
    args = helper.build_parser().parse_args(["send", "-e", url, "-k", SEED, "-r", BOB, "-m", "1", "-d", "2040-01-01"])
    container = ServiceContainer.build()

    record = await helper._send(args, container)

    assert record.status == Status.ERROR
    assert "Inability to pay some fees" in record.error


def test_new_prints_seed_and_address(capsys):
    assert helper.main(["new", "--prefix", "42"]) == 0
    seed_line, address_line = capsys.readouterr().out.splitlines()
    assert seed_line.startswith("Seed (hex): 0x") and len(seed_line.split("0x")[1]) == 64
    generated = address_line.split("Address: ")[1]
    assert len(check_address(generated, 42)) == 32
    seed = helper._parse_seed(seed_line.split(": ")[1])
    assert KeypairSigner(42).add_seed(seed) == generated


@pytest.mark.trio
async def test_balance_for_address_on_other_prefix(nursery):
    node = FakeNode(balances={ALICE_ID: 1_234_500_000_000})
    url = await start_node(nursery, node)
    args = helper.build_parser().parse_args(["balance", "-e", url, "-a", reencode(ALICE, 0)])

    account, planck, context = await helper._balance(args, ServiceContainer.build())

    assert account == ALICE
    assert planck == 1_234_500_000_000
    assert helper.format_balance(planck, context.token_decimals) == "1.234500000000"
    assert context.token_symbol == "UNIT"


@pytest.mark.trio
async def test_balance_for_seed_of_unknown_account(nursery):
    node = FakeNode(balances={ALICE_ID: 1})
    url = await start_node(nursery, node)
    args = helper.build_parser().parse_args(["balance", "-e", url, "-k", SEED])

    account, planck, context = await helper._balance(args, ServiceContainer.build())

    assert decode_address(account) == decode_address(KeypairSigner(42).add_seed(b"\x01" * 32))
    assert planck == 0
    assert helper.format_balance(planck, context.token_decimals) == "0.0"
