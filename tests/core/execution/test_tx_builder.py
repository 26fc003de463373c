"""
Tests for the programmable transaction builder.
"""

import pytest

from dca_keeper.core.execution.tx_builder import (
    GAS_COIN,
    Argument,
    DcaTradeBuilder,
    ProgrammableTransaction,
)


def test_object_inputs_are_deduplicated() -> None:
    tx = ProgrammableTransaction()
    first = tx.object("0xaa")
    tx.object("0xbb")
    again = tx.object("0xaa")

    assert first == again == Argument(kind="Input", index=0)
    assert len(tx.inputs) == 2


def test_pure_u64_is_string() -> None:
    tx = ProgrammableTransaction()
    tx.pure(2**64 - 1, "u64")
    tx.pure(True, "bool")

    assert tx.inputs[0]["value"] == "18446744073709551615"
    assert tx.inputs[1]["value"] is True


def test_nested_result_only_from_result() -> None:
    tx = ProgrammableTransaction()
    result = tx.move_call("0x1::m::f")

    assert result.nested(1).to_dict() == {"$kind": "NestedResult", "NestedResult": [0, 1]}
    with pytest.raises(ValueError):
        tx.object("0x1").nested(0)


def test_argument_dict_forms() -> None:
    for arg in (GAS_COIN, Argument("Input", 3), Argument("Result", 2), Argument("NestedResult", 1, 0)):
        assert Argument.from_dict(arg.to_dict()) == arg


def test_dict_form_keeps_commands() -> None:
    tx = ProgrammableTransaction(sender="0xme")
    coin = tx.move_call("0x2::coin::zero", ["0x2::sui::SUI"])
    tx.transfer_objects([coin], "0xme")

    data = tx.to_dict()
    copy = ProgrammableTransaction.from_dict(data)

    assert data["version"] == 2
    assert copy.commands == tx.commands
    assert copy.sender == "0xme"
    assert copy.targets() == ["0x2::coin::zero"]


def test_trade_calls_use_configured_objects() -> None:
    builder = DcaTradeBuilder(package_id="0xpkg", clock_id="0x6", registry_id="0xreg", fee_tracker_id="0xfees")
    tx = ProgrammableTransaction()
    type_args = ["0x2::sui::SUI", "0xusdc::usdc::USDC"]

    funds, promise = builder.init_trade(tx, type_args, "0xdca", "0xin", "0xout", "0xsui")
    coin_in = builder.coin_from_balance(tx, type_args[0], funds)
    amount = builder.coin_value(tx, type_args[1], coin_in)
    builder.resolve_trade(tx, type_args, "0xdca", promise, amount, executor_reward=1_000)

    init, from_balance, value, resolve = tx.move_calls()
    objects = [tx.inputs[a["Input"]]["Object"] for a in init["arguments"]]
    assert objects == ["0xdca", "0x6", "0xreg", "0xin", "0xsui", "0xout", "0xsui"]
    assert from_balance["arguments"] == [{"$kind": "NestedResult", "NestedResult": [0, 0]}]
    assert value["typeArguments"] == ["0xusdc::usdc::USDC"]
    assert resolve["arguments"][2] == {"$kind": "NestedResult", "NestedResult": [0, 1]}
    assert resolve["arguments"][3] == {"$kind": "Result", "Result": 2}
    assert tx.inputs[resolve["arguments"][1]["Input"]]["Object"] == "0xfees"
