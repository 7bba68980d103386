"""Ledger: chart of accounts, entry synthesis and entry review."""

from bookkeeper.ledger.accounts import (
    ACCOUNT_MAP,
    CHART_OF_ACCOUNTS,
    AccountPair,
    Direction,
    resolve_accounts,
    validate_account_map,
)
from bookkeeper.ledger.review import EntryReviewer
from bookkeeper.ledger.synthesizer import EntrySynthesizer, direction_of

__all__ = [
    "ACCOUNT_MAP",
    "CHART_OF_ACCOUNTS",
    "AccountPair",
    "Direction",
    "EntryReviewer",
    "EntrySynthesizer",
    "direction_of",
    "resolve_accounts",
    "validate_account_map",
]
