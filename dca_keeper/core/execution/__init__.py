"""
Transaction construction for DCA trades.

Usage:
    from dca_keeper.core.execution import ProgrammableTransaction, DcaTradeBuilder

    tx = ProgrammableTransaction(sender=executor_address)
    funds, promise = builder.init_trade(tx, [input_type, output_type], ...)
"""

from .tx_builder import GAS_COIN, Argument, DcaTradeBuilder, ProgrammableTransaction

__all__ = [
    "GAS_COIN",
    "Argument",
    "DcaTradeBuilder",
    "ProgrammableTransaction",
]
