# Overview: Permission package.
# Re-exports role codes and the transaction capability table.

from . import roles
from .policies import TRANSACTION_POLICIES, TransactionPolicy, get_policy

__all__ = [
    "roles",
    "TRANSACTION_POLICIES",
    "TransactionPolicy",
    "get_policy",
]
