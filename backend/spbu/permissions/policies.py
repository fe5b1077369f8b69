# Overview: Capability table for transaction creation and approval.

"""
Transaction policy table.

One lookup per operation replaces role-name branching scattered across
actions. Keys are transaction types; values list the roles allowed to
create, approve/reject, and the creator roles whose transactions of that
type skip the approval queue.

CLOSING and UNLOAD have no human creators or approvers: the closing engine
and unload approval post them already APPROVED.
"""

from dataclasses import dataclass, field

from ..models.accounting import (
    TYPE_ADJUSTMENT,
    TYPE_CASH,
    TYPE_CLOSING,
    TYPE_PURCHASE_BBM,
    TYPE_UNLOAD,
)
from . import roles


@dataclass(frozen=True)
class TransactionPolicy:
    can_create: frozenset
    can_approve: frozenset
    auto_approve_creators: frozenset = field(default_factory=frozenset)
    system_generated: bool = False
    deletable: bool = False


TRANSACTION_POLICIES: dict[str, TransactionPolicy] = {
    TYPE_PURCHASE_BBM: TransactionPolicy(
        can_create=frozenset({roles.OWNER_GROUP, roles.ADMINISTRATOR, roles.DEVELOPER}),
        can_approve=frozenset({roles.MANAGER, roles.ADMINISTRATOR}),
    ),
    TYPE_CASH: TransactionPolicy(
        can_create=frozenset({roles.FINANCE, roles.ADMINISTRATOR, roles.DEVELOPER}),
        can_approve=frozenset({roles.MANAGER, roles.ADMINISTRATOR}),
        deletable=True,
    ),
    TYPE_ADJUSTMENT: TransactionPolicy(
        can_create=frozenset({roles.ADMINISTRATOR, roles.ACCOUNTING, roles.DEVELOPER}),
        can_approve=frozenset({roles.MANAGER, roles.ADMINISTRATOR}),
        auto_approve_creators=frozenset({roles.ADMINISTRATOR, roles.DEVELOPER}),
        deletable=True,
    ),
    TYPE_CLOSING: TransactionPolicy(
        can_create=frozenset(),
        can_approve=frozenset(),
        system_generated=True,
    ),
    TYPE_UNLOAD: TransactionPolicy(
        can_create=frozenset(),
        can_approve=frozenset(),
        system_generated=True,
    ),
}


def get_policy(transaction_type: str) -> TransactionPolicy:
    """Raises KeyError for unknown types; callers validate the type first."""
    return TRANSACTION_POLICIES[transaction_type]


# Non-transaction capabilities checked at the HTTP boundary
UNLOAD_REQUEST_ROLES = (roles.UNLOADER, roles.ADMINISTRATOR, roles.DEVELOPER)
UNLOAD_APPROVE_ROLES = (roles.MANAGER, roles.ADMINISTRATOR)
UNLOAD_VIEW_ROLES = (roles.OWNER_GROUP, roles.FINANCE, roles.MANAGER, roles.UNLOADER)
CLOSING_RUN_ROLES = (roles.ADMINISTRATOR, roles.FINANCE)
CLOSING_STATUS_ROLES = (roles.ADMINISTRATOR, roles.FINANCE, roles.MANAGER)
CLOSING_BATCH_ROLES = (roles.ADMINISTRATOR,)
COA_MANAGE_ROLES = (roles.ADMINISTRATOR,)
COA_VIEW_ROLES = (roles.ADMINISTRATOR, roles.FINANCE, roles.ACCOUNTING, roles.MANAGER, roles.OWNER)
TRANSACTION_VIEW_ROLES = (roles.ADMINISTRATOR, roles.FINANCE, roles.ACCOUNTING, roles.MANAGER, roles.OWNER)
TRANSACTION_DELETE_ROLES = (roles.ADMINISTRATOR, roles.DEVELOPER)
REPAIR_ROLES = (roles.DEVELOPER, roles.ADMINISTRATOR)
TANK_SALES_ROLES = (roles.OPERATOR, roles.MANAGER, roles.FINANCE)
