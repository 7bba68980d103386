"""
Entry Review State Machine

suggested -> confirmed (records who and when)
suggested -> rejected

Both targets are terminal. Review never touches accounts, amount or
currency. The status check is repeated inside the storage conditional
update, so when two reviewers act on one entry only the first wins and
the second gets InvalidTransition.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from bookkeeper.errors import InvalidTransition
from bookkeeper.models.ledger import Entry, EntryStatus, utc_now
from bookkeeper.services.storage import EntryStorageInterface, NotFoundError


def _is_suggested(entry: Entry) -> bool:
    return entry.status == EntryStatus.SUGGESTED


class EntryReviewer:
    """Applies confirm/reject to entries. Authorization is the caller's job."""

    def __init__(self, storage: Optional[EntryStorageInterface] = None):
        self._storage = storage

    # Pure transitions

    def confirm(self, entry: Entry, acting_user: UUID, at: Optional[datetime] = None) -> Entry:
        """Return the confirmed copy of a suggested entry."""
        if not _is_suggested(entry):
            raise InvalidTransition(entry.status.value, "confirm")
        return entry.model_copy(update={
            "status": EntryStatus.CONFIRMED,
            "confirmed_by": acting_user,
            "confirmed_at": at or utc_now(),
        })

    def reject(self, entry: Entry) -> Entry:
        """Return the rejected copy of a suggested entry."""
        if not _is_suggested(entry):
            raise InvalidTransition(entry.status.value, "reject")
        return entry.model_copy(update={"status": EntryStatus.REJECTED})

    # Persisted transitions

    async def _load(self, company_id: UUID, entry_id: UUID) -> Entry:
        if self._storage is None:
            raise RuntimeError("EntryReviewer needs an entry storage to persist reviews")
        entry = await self._storage.get_entry(company_id, entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    async def _persist(self, entry: Entry, target: Entry, requested: str) -> Entry:
        patch = {
            "status": target.status,
            "confirmed_by": target.confirmed_by,
            "confirmed_at": target.confirmed_at,
        }
        updated = await self._storage.update_entry_if(
            entry.company_id, entry.id, _is_suggested, patch
        )
        if updated is None:
            # Someone else moved it between our read and our write
            current = await self._storage.get_entry(entry.company_id, entry.id)
            current_status = current.status.value if current else entry.status.value
            raise InvalidTransition(current_status, requested)
        return updated

    async def confirm_entry(
        self,
        company_id: UUID,
        entry_id: UUID,
        acting_user: UUID,
        at: Optional[datetime] = None,
    ) -> Entry:
        """
        Confirm a stored entry.

        Raises:
            NotFoundError: If the company has no such entry
            InvalidTransition: If the entry is not suggested
        """
        entry = await self._load(company_id, entry_id)
        target = self.confirm(entry, acting_user, at)
        return await self._persist(entry, target, "confirm")

    async def reject_entry(self, company_id: UUID, entry_id: UUID) -> Entry:
        """
        Reject a stored entry.

        Raises:
            NotFoundError: If the company has no such entry
            InvalidTransition: If the entry is not suggested
        """
        entry = await self._load(company_id, entry_id)
        target = self.reject(entry)
        return await self._persist(entry, target, "reject")
