"""
Document-to-Transaction Matcher

Finds the one bank transaction that best explains an extracted document.

Scoring:
- Currency mismatch: candidate disqualified
- Date further than the window: candidate disqualified
- Amount: exact 1.0, within 1% 0.9, within 5% 0.6, within 10% 0.3
- Date: decays linearly across the window
- Text: counterparty found in the description, else token overlap

Ties are broken by score, then date distance, then import order, then id,
so the same pool always yields the same winner.

CRITICAL: Choosing a winner is pure; claiming it is not. The claim is a
conditional update on the transaction (only if still unmatched), so two
documents racing for one transaction produce exactly one match. A loser
re-reads the pool and tries again, a bounded number of times.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from bookkeeper.config import MatchingSettings, get_settings
from bookkeeper.models.ledger import BankTransaction, Document, DocumentStatus, MatchResult
from bookkeeper.services.storage import TransactionStorageInterface


_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# Relative amount difference -> score. Checked in order, first hit wins.
AMOUNT_TIERS: tuple[tuple[Decimal, float], ...] = (
    (Decimal("0.01"), 0.9),
    (Decimal("0.05"), 0.6),
    (Decimal("0.10"), 0.3),
)


@dataclass
class ScoredCandidate:
    """A transaction that survived the hard filters, with its score."""
    transaction: BankTransaction
    score: float
    days_apart: int
    breakdown: dict[str, float] = field(default_factory=dict)

    def sort_key(self) -> tuple:
        return (
            -self.score,
            self.days_apart,
            self.transaction.created_at,
            str(self.transaction.id),
        )


def _tokens(text: str) -> set[str]:
    return {t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 1}


class TransactionMatcher:
    """
    Matches DONE documents against a company's unmatched transactions.

    Thresholds and weights come from MatchingSettings.
    """

    def __init__(
        self,
        storage: Optional[TransactionStorageInterface] = None,
        settings: Optional[MatchingSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().matching
        self._logger = structlog.get_logger("bookkeeper.matching")

    # =========================================================================
    # SCORING
    # =========================================================================

    def score_amount(self, document_amount: Decimal, transaction_amount: Decimal) -> float:
        """Score amount agreement. Signs are ignored."""
        doc_amount = abs(document_amount)
        tx_amount = abs(transaction_amount)

        if doc_amount == tx_amount:
            return 1.0
        if doc_amount == 0:
            return 0.0

        relative_diff = abs(doc_amount - tx_amount) / doc_amount
        for tolerance, score in AMOUNT_TIERS:
            if relative_diff <= tolerance:
                return score
        return 0.0

    def score_date(self, days_apart: int) -> float:
        """Linear decay: same day is 1.0, the edge of the window is just above 0."""
        window = self._settings.date_window_days
        return 1.0 - days_apart / (window + 1)

    def score_text(self, counterparty: Optional[str], description: str) -> float:
        """Score how well the transaction description names the counterparty."""
        if not counterparty or not description:
            return 0.0

        cp = counterparty.strip().lower()
        desc = description.strip().lower()
        if not cp or not desc:
            return 0.0
        if cp in desc or desc in cp:
            return 1.0

        cp_tokens = _tokens(cp)
        if not cp_tokens:
            return 0.0
        return len(cp_tokens & _tokens(desc)) / len(cp_tokens)

    def score_candidate(
        self,
        document: Document,
        transaction: BankTransaction,
    ) -> Optional[ScoredCandidate]:
        """
        Score one candidate.

        Returns None if the candidate is disqualified (currency or date window).
        """
        if transaction.currency != document.currency:
            return None

        days_apart = abs((transaction.transaction_date - document.document_date).days)
        if days_apart > self._settings.date_window_days:
            return None

        amount_score = self.score_amount(document.amount, transaction.amount)
        date_score = self.score_date(days_apart)
        text_score = self.score_text(document.counterparty, transaction.description)

        total = (
            amount_score * self._settings.amount_weight
            + date_score * self._settings.date_weight
            + text_score * self._settings.text_weight
        )

        return ScoredCandidate(
            transaction=transaction,
            score=total,
            days_apart=days_apart,
            breakdown={
                "amount": amount_score,
                "date": round(date_score, 4),
                "text": round(text_score, 4),
                "total": round(total, 4),
            },
        )

    def rank_candidates(
        self,
        document: Document,
        candidates: list[BankTransaction],
    ) -> list[ScoredCandidate]:
        """All eligible candidates, best first."""
        if document.status != DocumentStatus.DONE:
            raise ValueError(
                f"Only extracted documents can be matched, got status '{document.status.value}'"
            )

        scored = []
        for tx in candidates:
            if tx.company_id != document.company_id or tx.is_matched:
                continue
            candidate = self.score_candidate(document, tx)
            if candidate is not None:
                scored.append(candidate)

        scored.sort(key=ScoredCandidate.sort_key)
        return scored

    def find_best_match(
        self,
        document: Document,
        candidates: list[BankTransaction],
    ) -> Optional[MatchResult]:
        """
        Pick the best transaction for a document without claiming it.

        Returns:
            MatchResult, or None when nothing clears min_score
        """
        ranked = self.rank_candidates(document, candidates)
        if not ranked or ranked[0].score < self._settings.min_score:
            return None

        best = ranked[0]
        return MatchResult(
            transaction=best.transaction,
            confidence=min(1.0, best.score),
            scoring_breakdown=best.breakdown,
        )

    # =========================================================================
    # CLAIMING
    # =========================================================================

    async def match(self, company_id: UUID, document: Document) -> Optional[MatchResult]:
        """
        Find and atomically claim the best transaction for a document.

        Returns:
            MatchResult holding the claimed transaction, or None (no match)
        """
        if self._storage is None:
            raise RuntimeError("TransactionMatcher.match requires a transaction storage")

        lost: set[UUID] = set()

        for attempt in range(1, self._settings.claim_attempts + 1):
            pool = [
                tx for tx in await self._storage.list_transactions(company_id, unmatched_only=True)
                if tx.id not in lost
            ]
            best = self.find_best_match(document, pool)
            if best is None:
                return None

            claimed = await self._storage.update_transaction_if(
                company_id,
                best.transaction.id,
                lambda tx: not tx.is_matched,
                {"is_matched": True, "matched_document_id": document.id},
            )
            if claimed is not None:
                return best.model_copy(update={"transaction": claimed})

            self._logger.info(
                "claim_lost",
                company_id=str(company_id),
                document_id=str(document.id),
                transaction_id=str(best.transaction.id),
                attempt=attempt,
            )
            lost.add(best.transaction.id)

        return None

    def candidates_considered(self, document: Document, candidates: list[BankTransaction]) -> int:
        """How many candidates passed the hard filters (for audit details)."""
        return len(self.rank_candidates(document, candidates))
