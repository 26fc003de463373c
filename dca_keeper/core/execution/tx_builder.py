"""
Programmable transaction builder for DCA trades.

Builds the command list of one Sui programmable transaction block (PTB).
Serialization to BCS bytes, gas selection and object version resolution are
left to the transaction builder collaborator; this module only describes
what the transaction does.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class Argument:
    """Reference to a PTB input, a command result or a nested result."""
    kind: str
    index: int = 0
    result_index: Optional[int] = None

    def nested(self, result_index: int) -> Argument:
        if self.kind != "Result":
            raise ValueError("Only command results can be indexed")
        return Argument(kind="NestedResult", index=self.index, result_index=result_index)

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "GasCoin":
            return {"$kind": "GasCoin", "GasCoin": True}
        if self.kind == "NestedResult":
            return {"$kind": "NestedResult", "NestedResult": [self.index, self.result_index]}
        return {"$kind": self.kind, self.kind: self.index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Argument:
        kind = data["$kind"]
        if kind == "GasCoin":
            return cls(kind="GasCoin")
        if kind == "NestedResult":
            index, result_index = data["NestedResult"]
            return cls(kind=kind, index=int(index), result_index=int(result_index))
        return cls(kind=kind, index=int(data[kind]))


GAS_COIN = Argument(kind="GasCoin")


@dataclass
class ProgrammableTransaction:
    """Ordered inputs and commands of one atomic transaction."""
    inputs: List[Dict[str, Any]] = field(default_factory=list)
    commands: List[Dict[str, Any]] = field(default_factory=list)
    sender: Optional[str] = None
    tx_id: str = field(default_factory=lambda: f"ptb_{secrets.token_hex(8)}")

    # --- inputs -------------------------------------------------------------

    def object(self, object_id: str) -> Argument:
        for i, existing in enumerate(self.inputs):
            if existing.get("Object") == object_id:
                return Argument(kind="Input", index=i)
        self.inputs.append({"$kind": "UnresolvedObject", "Object": object_id})
        return Argument(kind="Input", index=len(self.inputs) - 1)

    def pure(self, value: Any, type_tag: str) -> Argument:
        self.inputs.append({"$kind": "UnresolvedPure", "value": _pure_value(value), "type": type_tag})
        return Argument(kind="Input", index=len(self.inputs) - 1)

    # --- commands -----------------------------------------------------------

    def move_call(
        self,
        target: str,
        type_arguments: Sequence[str] = (),
        arguments: Sequence[Argument] = (),
    ) -> Argument:
        package, module, function = target.split("::")
        self.commands.append({
            "$kind": "MoveCall",
            "MoveCall": {
                "package": package,
                "module": module,
                "function": function,
                "typeArguments": list(type_arguments),
                "arguments": [arg.to_dict() for arg in arguments],
            },
        })
        return Argument(kind="Result", index=len(self.commands) - 1)

    def transfer_objects(self, objects: Sequence[Argument], address: str) -> Argument:
        recipient = self.pure(address, "address")
        self.commands.append({
            "$kind": "TransferObjects",
            "TransferObjects": {
                "objects": [obj.to_dict() for obj in objects],
                "address": recipient.to_dict(),
            },
        })
        return Argument(kind="Result", index=len(self.commands) - 1)

    def move_calls(self) -> List[Dict[str, Any]]:
        return [c["MoveCall"] for c in self.commands if c.get("$kind") == "MoveCall"]

    def targets(self) -> List[str]:
        return [f"{c['package']}::{c['module']}::{c['function']}" for c in self.move_calls()]

    # --- serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": 2,
            "sender": self.sender,
            "inputs": list(self.inputs),
            "commands": list(self.commands),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProgrammableTransaction:
        return cls(
            inputs=list(data.get("inputs") or []),
            commands=list(data.get("commands") or []),
            sender=data.get("sender"),
        )


def _pure_value(value: Any) -> Any:
    # u64 values are carried as decimal strings so JSON never rounds them.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class DcaTradeBuilder:
    """
    Builds the DCA contract calls around an aggregator swap.

    Handles:
    - init_trade (withdraws the escrowed allocation, oracle price objects)
    - coin wrapping of the withdrawn balance
    - resolve_trade (output validation, executor reward)
    - payouts to the owner and the executor
    """

    def __init__(self, package_id: str, clock_id: str, registry_id: str, fee_tracker_id: str):
        self.package_id = package_id
        self.clock_id = clock_id
        self.registry_id = registry_id
        self.fee_tracker_id = fee_tracker_id

    def init_trade(
        self,
        tx: ProgrammableTransaction,
        type_arguments: Sequence[str],
        dca_id: str,
        input_price_info: str,
        output_price_info: str,
        intermediate_price_info: str,
    ) -> tuple[Argument, Argument]:
        """Returns ``(funds_balance, promise)``."""
        result = tx.move_call(
            f"{self.package_id}::dca::init_trade",
            type_arguments,
            [
                tx.object(dca_id),
                tx.object(self.clock_id),
                tx.object(self.registry_id),
                tx.object(input_price_info),
                tx.object(intermediate_price_info),
                tx.object(output_price_info),
                tx.object(intermediate_price_info),
            ],
        )
        return result.nested(0), result.nested(1)

    @staticmethod
    def coin_from_balance(tx: ProgrammableTransaction, coin_type: str, balance: Argument) -> Argument:
        return tx.move_call("0x2::coin::from_balance", [coin_type], [balance])

    @staticmethod
    def coin_value(tx: ProgrammableTransaction, coin_type: str, coin: Argument) -> Argument:
        return tx.move_call("0x2::coin::value", [coin_type], [coin])

    def resolve_trade(
        self,
        tx: ProgrammableTransaction,
        type_arguments: Sequence[str],
        dca_id: str,
        promise: Argument,
        output_amount: Argument,
        executor_reward: int,
    ) -> Argument:
        """Returns the executor reward coin."""
        return tx.move_call(
            f"{self.package_id}::dca::resolve_trade",
            type_arguments,
            [
                tx.object(dca_id),
                tx.object(self.fee_tracker_id),
                promise,
                output_amount,
                tx.pure(executor_reward, "u64"),
            ],
        )
