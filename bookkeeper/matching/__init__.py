"""Document-to-transaction matching."""

from bookkeeper.matching.matcher import ScoredCandidate, TransactionMatcher

__all__ = ["ScoredCandidate", "TransactionMatcher"]
