"""
Tests for the command-line trigger.
"""

import pytest

from cli import build_parser, run
from conftest import NOW_MS


@pytest.fixture
def due_ledger(ledger):
    ledger.add_order("0x01", last_time_ms=NOW_MS - 600_000)
    ledger.add_order("0x02", last_time_ms=NOW_MS)
    return ledger


def test_parser_flags():
    args = build_parser().parse_args(["-d", "-l", "3", "--owner", "0xalice"])

    assert args.discover_only
    assert args.limit == 3
    assert args.owner == "0xalice"


@pytest.mark.asyncio
async def test_discover_only(context, due_ledger, capsys):
    code = await run(build_parser().parse_args(["--discover"]), context)

    out = capsys.readouterr().out
    assert code == 0
    assert "Discovered 2 DCAs, 1 eligible" in out
    assert due_ledger.submitted == []


@pytest.mark.asyncio
async def test_execute_requires_signer(context, due_ledger):
    context.signer = None
    assert await run(build_parser().parse_args([]), context) == 2


@pytest.mark.asyncio
async def test_execute(context, due_ledger, capsys):
    code = await run(build_parser().parse_args(["-l", "5"]), context)

    assert code == 0
    assert len(due_ledger.submitted) == 1
    assert "Success: 1" in capsys.readouterr().out
