"""
Chart of Accounts and Account Selection Table

Account codes follow the Kazakhstan standard chart of accounts for small
businesses. Only the accounts the synthesizer can post to are listed.

DESIGN DECISION: Account selection is one explicit table keyed by
(document category, direction). Every key must be present; a key that
cannot produce an entry maps to None. The table is checked when this
module is imported, so a typo in a code or a missing combination fails
at startup instead of producing a malformed entry at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bookkeeper.models.ledger import DocumentCategory


CASH_ON_HAND = "1010"
BANK_ACCOUNT = "1030"
ACCOUNTS_RECEIVABLE = "1210"
ACCOUNTS_PAYABLE = "3310"
REVENUE = "6010"
OTHER_INCOME = "6280"
ADMINISTRATIVE_EXPENSES = "7210"
OTHER_EXPENSES = "7470"

CHART_OF_ACCOUNTS: dict[str, str] = {
    CASH_ON_HAND: "Cash on hand",
    BANK_ACCOUNT: "Cash in current bank accounts",
    ACCOUNTS_RECEIVABLE: "Short-term receivables from customers",
    ACCOUNTS_PAYABLE: "Short-term payables to suppliers",
    REVENUE: "Revenue from sales of goods and services",
    OTHER_INCOME: "Other income",
    ADMINISTRATIVE_EXPENSES: "Administrative expenses",
    OTHER_EXPENSES: "Other expenses",
}


class Direction(str, Enum):
    """Which way money moved, as told by the transaction sign."""
    INFLOW = "inflow"    # Positive amount
    OUTFLOW = "outflow"  # Negative amount
    UNKNOWN = "unknown"  # No transaction to tell


@dataclass(frozen=True)
class AccountPair:
    debit: str
    credit: str


ACCOUNT_MAP: dict[tuple[DocumentCategory, Direction], Optional[AccountPair]] = {
    # Money in: debit the bank account
    (DocumentCategory.INVOICE, Direction.INFLOW): AccountPair(BANK_ACCOUNT, ACCOUNTS_RECEIVABLE),
    (DocumentCategory.RECEIPT, Direction.INFLOW): AccountPair(BANK_ACCOUNT, REVENUE),
    (DocumentCategory.CONTRACT, Direction.INFLOW): AccountPair(BANK_ACCOUNT, REVENUE),
    (DocumentCategory.STATEMENT, Direction.INFLOW): AccountPair(BANK_ACCOUNT, OTHER_INCOME),
    (DocumentCategory.OTHER, Direction.INFLOW): AccountPair(BANK_ACCOUNT, OTHER_INCOME),

    # Money out: credit the bank account
    (DocumentCategory.INVOICE, Direction.OUTFLOW): AccountPair(ACCOUNTS_PAYABLE, BANK_ACCOUNT),
    (DocumentCategory.RECEIPT, Direction.OUTFLOW): AccountPair(ADMINISTRATIVE_EXPENSES, BANK_ACCOUNT),
    (DocumentCategory.CONTRACT, Direction.OUTFLOW): AccountPair(ADMINISTRATIVE_EXPENSES, BANK_ACCOUNT),
    (DocumentCategory.STATEMENT, Direction.OUTFLOW): AccountPair(OTHER_EXPENSES, BANK_ACCOUNT),
    (DocumentCategory.OTHER, Direction.OUTFLOW): AccountPair(OTHER_EXPENSES, BANK_ACCOUNT),

    # No transaction: only documents that imply a direction on their own
    (DocumentCategory.INVOICE, Direction.UNKNOWN): AccountPair(ADMINISTRATIVE_EXPENSES, ACCOUNTS_PAYABLE),
    (DocumentCategory.RECEIPT, Direction.UNKNOWN): AccountPair(ADMINISTRATIVE_EXPENSES, CASH_ON_HAND),
    (DocumentCategory.CONTRACT, Direction.UNKNOWN): None,
    (DocumentCategory.STATEMENT, Direction.UNKNOWN): None,
    (DocumentCategory.OTHER, Direction.UNKNOWN): None,
}


def validate_account_map(
    account_map: dict[tuple[DocumentCategory, Direction], Optional[AccountPair]],
    chart: dict[str, str],
) -> None:
    """
    Check a selection table is exhaustive and well-formed.

    Raises:
        ValueError: On a missing key, an unknown account code or a
            pair that debits and credits the same account
    """
    expected = {(category, direction) for category in DocumentCategory for direction in Direction}
    missing = expected - set(account_map)
    if missing:
        names = sorted(f"{c.value}/{d.value}" for c, d in missing)
        raise ValueError(f"Account map is missing: {', '.join(names)}")

    for (category, direction), pair in account_map.items():
        if pair is None:
            continue
        key = f"{category.value}/{direction.value}"
        for code in (pair.debit, pair.credit):
            if code not in chart:
                raise ValueError(f"Account map {key} uses unknown account {code}")
        if pair.debit == pair.credit:
            raise ValueError(f"Account map {key} debits and credits the same account")


def resolve_accounts(category: DocumentCategory, direction: Direction) -> Optional[AccountPair]:
    return ACCOUNT_MAP[(category, direction)]


validate_account_map(ACCOUNT_MAP, CHART_OF_ACCOUNTS)
