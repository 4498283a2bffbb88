"""
svgnft_deploy.tx
================

Transaction submission helpers, receipts and confirmation waits.
"""

from .send import (
    Log,
    PendingTransaction,
    TransactionReceipt,
    get_transaction_receipt,
    submit,
    wait_for_receipt,
)

__all__ = [
    "Log",
    "PendingTransaction",
    "TransactionReceipt",
    "get_transaction_receipt",
    "submit",
    "wait_for_receipt",
]
