"""Tests for the entry review state machine."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeper.errors import InvalidTransition
from bookkeeper.ledger import EntryReviewer
from bookkeeper.models.ledger import Entry, EntryStatus
from bookkeeper.services.storage import InMemoryLedgerStorage, NotFoundError


def _entry(company_id):
    return Entry(
        company_id=company_id,
        debit_account="7210",
        credit_account="1030",
        amount=Decimal("15000"),
        currency="KZT",
    )


class YieldingStorage(InMemoryLedgerStorage):
    """Suspends after every read so two reviewers interleave."""

    async def get_entry(self, company_id, entry_id):
        entry = await super().get_entry(company_id, entry_id)
        await asyncio.sleep(0)
        return entry


class TestPureTransitions:
    """Tests for confirm/reject on in-memory entries."""

    def test_confirm_records_user_and_time(self, company_id, user_id):
        """Test confirm sets status and confirmation metadata."""
        at = datetime(2024, 3, 12, 9, 30, tzinfo=timezone.utc)
        confirmed = EntryReviewer().confirm(_entry(company_id), user_id, at)

        assert confirmed.status == EntryStatus.CONFIRMED
        assert confirmed.confirmed_by == user_id
        assert confirmed.confirmed_at == at

    def test_reject_only_changes_status(self, company_id):
        """Test reject leaves accounts, amount and currency alone."""
        entry = _entry(company_id)
        rejected = EntryReviewer().reject(entry)

        assert rejected.status == EntryStatus.REJECTED
        assert rejected.confirmed_by is None
        assert (rejected.debit_account, rejected.credit_account, rejected.amount, rejected.currency) == (
            entry.debit_account, entry.credit_account, entry.amount, entry.currency
        )

    def test_double_confirm_fails(self, company_id, user_id):
        """Test confirmed is terminal."""
        reviewer = EntryReviewer()
        confirmed = reviewer.confirm(_entry(company_id), user_id)
        with pytest.raises(InvalidTransition):
            reviewer.confirm(confirmed, user_id)

    def test_confirm_after_reject_fails(self, company_id, user_id):
        """Test a rejected entry cannot be confirmed."""
        reviewer = EntryReviewer()
        rejected = reviewer.reject(_entry(company_id))
        with pytest.raises(InvalidTransition) as exc_info:
            reviewer.confirm(rejected, user_id)
        assert exc_info.value.current == "rejected"
        assert exc_info.value.requested == "confirm"

    def test_reject_after_confirm_fails(self, company_id, user_id):
        """Test a confirmed entry cannot be rejected."""
        reviewer = EntryReviewer()
        confirmed = reviewer.confirm(_entry(company_id), user_id)
        with pytest.raises(InvalidTransition, match="already confirmed"):
            reviewer.reject(confirmed)


class TestPersistedTransitions:
    """Tests for review against storage."""

    @pytest.mark.asyncio
    async def test_confirm_entry_persists(self, storage, company_id, user_id):
        """Test confirmation is written to storage."""
        entry = _entry(company_id)
        await storage.save_entry(entry)

        await EntryReviewer(storage).confirm_entry(company_id, entry.id, user_id)

        stored = await storage.get_entry(company_id, entry.id)
        assert stored.status == EntryStatus.CONFIRMED
        assert stored.confirmed_by == user_id

    @pytest.mark.asyncio
    async def test_confirm_rejected_entry_leaves_it_rejected(self, storage, company_id, user_id):
        """Test confirming a rejected entry fails and changes nothing."""
        entry = _entry(company_id)
        await storage.save_entry(entry)
        reviewer = EntryReviewer(storage)

        await reviewer.reject_entry(company_id, entry.id)
        with pytest.raises(InvalidTransition):
            await reviewer.confirm_entry(company_id, entry.id, user_id)

        stored = await storage.get_entry(company_id, entry.id)
        assert stored.status == EntryStatus.REJECTED
        assert stored.confirmed_by is None

    @pytest.mark.asyncio
    async def test_unknown_entry(self, storage, company_id, user_id):
        """Test reviewing a missing entry raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await EntryReviewer(storage).confirm_entry(company_id, uuid4(), user_id)

    @pytest.mark.asyncio
    async def test_other_company_cannot_review(self, storage, company_id, user_id):
        """Test an entry is invisible to other companies."""
        entry = _entry(company_id)
        await storage.save_entry(entry)
        with pytest.raises(NotFoundError):
            await EntryReviewer(storage).reject_entry(uuid4(), entry.id)

    @pytest.mark.asyncio
    async def test_concurrent_reviewers_have_one_winner(self, company_id, user_id):
        """Test confirm and reject racing on one entry: exactly one succeeds."""
        storage = YieldingStorage()
        entry = _entry(company_id)
        await storage.save_entry(entry)
        reviewer = EntryReviewer(storage)

        results = await asyncio.gather(
            reviewer.confirm_entry(company_id, entry.id, user_id),
            reviewer.reject_entry(company_id, entry.id),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Entry)]
        failures = [r for r in results if isinstance(r, InvalidTransition)]
        assert len(successes) == 1
        assert len(failures) == 1

        stored = await storage.get_entry(company_id, entry.id)
        assert stored.status == successes[0].status
