"""Tests for the document-to-transaction matcher."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeper.config import MatchingSettings
from bookkeeper.matching import TransactionMatcher
from bookkeeper.models.ledger import DocumentStatus
from bookkeeper.services.storage import InMemoryLedgerStorage

from tests.factories import bank_transaction, done_document


class YieldingStorage(InMemoryLedgerStorage):
    """Suspends after every pool read so concurrent matchers interleave."""

    async def list_transactions(self, company_id, unmatched_only=False):
        result = await super().list_transactions(company_id, unmatched_only)
        await asyncio.sleep(0)
        return result


class TestScoring:
    """Tests for the individual score components."""

    @pytest.fixture
    def matcher(self, matching_settings):
        return TransactionMatcher(settings=matching_settings)

    @pytest.mark.parametrize("tx_amount,expected", [
        ("-100", 1.0),
        ("100.50", 0.9),
        ("-104", 0.6),
        ("109", 0.3),
        ("-120", 0.0),
    ])
    def test_amount_tiers(self, matcher, tx_amount, expected):
        """Test amount score tiers ignore the transaction sign."""
        assert matcher.score_amount(Decimal("100"), Decimal(tx_amount)) == expected

    def test_date_score_decays_across_window(self, matcher):
        """Test same-day is 1.0 and the window edge stays positive."""
        assert matcher.score_date(0) == 1.0
        assert matcher.score_date(5) == pytest.approx(1 - 5 / 6)
        assert matcher.score_date(1) > matcher.score_date(2)

    def test_text_substring(self, matcher):
        """Test a counterparty named in the description scores 1.0."""
        assert matcher.score_text("Kazakhtelecom", "Payment KAZAKHTELECOM JSC") == 1.0

    def test_text_token_overlap(self, matcher):
        """Test partial name overlap scores the shared token ratio."""
        assert matcher.score_text("Kazakhtelecom JSC", "transfer to kazakhtelecom") == 0.5

    def test_text_missing_counterparty(self, matcher):
        """Test no counterparty means no text evidence."""
        assert matcher.score_text(None, "Payment") == 0.0
        assert matcher.score_text("Kazakhtelecom", "") == 0.0


class TestFindBestMatch:
    """Tests for pure candidate selection."""

    @pytest.fixture
    def matcher(self, matching_settings):
        return TransactionMatcher(settings=matching_settings)

    def test_exact_amount_within_window_matches(self, matcher, company_id):
        """Test the KZT 15000 receipt matches the next-day outflow."""
        document = done_document(company_id)
        tx = bank_transaction(company_id)

        result = matcher.find_best_match(document, [tx])

        assert result is not None
        assert result.transaction.id == tx.id
        assert result.scoring_breakdown["amount"] == 1.0
        assert result.confidence >= 0.6

    def test_currency_mismatch_is_no_match(self, matcher, company_id):
        """Test a different currency disqualifies even an exact amount on the same day."""
        document = done_document(company_id)
        tx = bank_transaction(company_id, currency="USD", transaction_date=date(2024, 3, 10))

        assert matcher.find_best_match(document, [tx]) is None

    def test_outside_date_window_is_no_match(self, matcher, company_id):
        """Test transactions beyond the window are ineligible."""
        document = done_document(company_id)
        tx = bank_transaction(company_id, transaction_date=date(2024, 3, 17))

        assert matcher.find_best_match(document, [tx]) is None

    def test_below_threshold_is_no_match(self, matcher, company_id):
        """Test date and text agreement alone cannot reach the threshold."""
        document = done_document(company_id)
        tx = bank_transaction(company_id, amount="-50000", transaction_date=date(2024, 3, 10))

        assert matcher.find_best_match(document, [tx]) is None

    def test_empty_pool_is_no_match(self, matcher, company_id):
        """Test an empty pool yields no match rather than an error."""
        assert matcher.find_best_match(done_document(company_id), []) is None

    def test_closer_date_wins_tie(self, matcher, company_id):
        """Test equal amounts are separated by date distance."""
        document = done_document(company_id, counterparty=None)
        far = bank_transaction(company_id, transaction_date=date(2024, 3, 13))
        near = bank_transaction(company_id, transaction_date=date(2024, 3, 11))

        result = matcher.find_best_match(document, [far, near])

        assert result.transaction.id == near.id

    def test_earliest_import_wins_exact_tie(self, matcher, company_id):
        """Test identical candidates are separated by created_at."""
        document = done_document(company_id)
        base = datetime(2024, 3, 12, tzinfo=timezone.utc)
        later = bank_transaction(company_id).model_copy(update={"created_at": base + timedelta(seconds=5)})
        earlier = bank_transaction(company_id).model_copy(update={"created_at": base})

        result = matcher.find_best_match(document, [later, earlier])

        assert result.transaction.id == earlier.id

    def test_skips_matched_and_foreign_transactions(self, matcher, company_id):
        """Test claimed transactions and other companies' transactions are ignored."""
        document = done_document(company_id)
        claimed = bank_transaction(company_id).model_copy(
            update={"is_matched": True, "matched_document_id": uuid4()}
        )
        foreign = bank_transaction(uuid4())

        assert matcher.find_best_match(document, [claimed, foreign]) is None

    def test_requires_extracted_document(self, matcher, company_id):
        """Test a document without extracted fields cannot be matched."""
        document = done_document(company_id).model_copy(update={"status": DocumentStatus.PROCESSING})
        with pytest.raises(ValueError, match="extracted"):
            matcher.find_best_match(document, [bank_transaction(company_id)])

    def test_custom_weights(self, company_id):
        """Test weights and threshold come from settings."""
        settings = MatchingSettings(
            amount_weight=1.0,
            date_weight=0.0,
            text_weight=0.0,
            min_score=0.9,
        )
        matcher = TransactionMatcher(settings=settings)
        document = done_document(company_id, amount="10000")

        near = bank_transaction(company_id, amount="-10050")
        off = bank_transaction(company_id, amount="-10400")

        assert matcher.find_best_match(document, [near]).confidence == pytest.approx(0.9)
        assert matcher.find_best_match(document, [off]) is None


class TestClaiming:
    """Tests for the atomic claim against storage."""

    @pytest.mark.asyncio
    async def test_match_claims_transaction(self, storage, matching_settings, company_id):
        """Test a match marks the transaction as matched to the document."""
        document = done_document(company_id)
        tx = bank_transaction(company_id)
        await storage.save_transactions([tx])

        matcher = TransactionMatcher(storage, matching_settings)
        result = await matcher.match(company_id, document)

        stored = await storage.get_transaction(company_id, tx.id)
        assert result.transaction.is_matched
        assert stored.is_matched
        assert stored.matched_document_id == document.id

    @pytest.mark.asyncio
    async def test_claimed_transaction_is_not_matched_twice(self, storage, matching_settings, company_id):
        """Test a second document sees an empty pool."""
        await storage.save_transactions([bank_transaction(company_id)])
        matcher = TransactionMatcher(storage, matching_settings)

        first = await matcher.match(company_id, done_document(company_id))
        second = await matcher.match(company_id, done_document(company_id))

        assert first is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_concurrent_matchers_have_one_winner(self, matching_settings, company_id):
        """Test two documents racing for one transaction produce exactly one match."""
        storage = YieldingStorage()
        tx = bank_transaction(company_id)
        await storage.save_transactions([tx])

        doc_a = done_document(company_id)
        doc_b = done_document(company_id)
        results = await asyncio.gather(
            TransactionMatcher(storage, matching_settings).match(company_id, doc_a),
            TransactionMatcher(storage, matching_settings).match(company_id, doc_b),
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1

        stored = await storage.get_transaction(company_id, tx.id)
        assert stored.is_matched
        assert stored.matched_document_id in {doc_a.id, doc_b.id}
        assert winners[0].transaction.matched_document_id == stored.matched_document_id

    @pytest.mark.asyncio
    async def test_claim_loser_retries_next_candidate(self, matching_settings, company_id):
        """Test the loser of a race moves on to the next best transaction."""
        storage = YieldingStorage()
        base = datetime(2024, 3, 12, tzinfo=timezone.utc)
        tx1 = bank_transaction(company_id).model_copy(update={"created_at": base})
        tx2 = bank_transaction(company_id).model_copy(update={"created_at": base + timedelta(seconds=1)})
        await storage.save_transactions([tx1, tx2])

        doc_a = done_document(company_id)
        doc_b = done_document(company_id)
        results = await asyncio.gather(
            TransactionMatcher(storage, matching_settings).match(company_id, doc_a),
            TransactionMatcher(storage, matching_settings).match(company_id, doc_b),
        )

        assert all(r is not None for r in results)
        assert {r.transaction.id for r in results} == {tx1.id, tx2.id}

    @pytest.mark.asyncio
    async def test_match_is_company_scoped(self, storage, matching_settings, company_id):
        """Test another company's transactions are never claimed."""
        other_company = uuid4()
        await storage.save_transactions([bank_transaction(other_company)])

        matcher = TransactionMatcher(storage, matching_settings)
        assert await matcher.match(company_id, done_document(company_id)) is None
