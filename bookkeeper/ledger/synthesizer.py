"""
Entry Synthesizer

Turns a matched (document, transaction) pair, or either one alone, into a
suggested double-entry record. Nothing is persisted here.

Rules:
- Accounts come from the selection table in bookkeeper.ledger.accounts
- Without a document the category is OTHER
- Without a transaction the direction is UNKNOWN
- The entry amount is always positive; direction lives in debit vs credit
- The transaction's currency wins over the document's
"""

from typing import Optional
from uuid import UUID

from bookkeeper.errors import UnresolvableAccounts
from bookkeeper.ledger.accounts import Direction, resolve_accounts
from bookkeeper.models.ledger import (
    BankTransaction,
    Document,
    DocumentCategory,
    DocumentStatus,
    Entry,
    EntryStatus,
)


def direction_of(transaction: Optional[BankTransaction]) -> Direction:
    if transaction is None:
        return Direction.UNKNOWN
    return Direction.INFLOW if transaction.is_inflow else Direction.OUTFLOW


class EntrySynthesizer:
    """Builds suggested entries. Stateless."""

    def synthesize(
        self,
        company_id: UUID,
        document: Optional[Document] = None,
        transaction: Optional[BankTransaction] = None,
        confidence: Optional[float] = None,
    ) -> Entry:
        """
        Build a suggested entry.

        Args:
            company_id: Owning company; both sources must belong to it
            document: An extracted (DONE) document, if any
            transaction: A bank transaction, if any
            confidence: Overrides the confidence taken from the document

        Returns:
            Entry in SUGGESTED status

        Raises:
            ValueError: If neither source is given, a source belongs to
                another company, or the document has no extracted fields
            UnresolvableAccounts: If no account pair fits
        """
        if document is None and transaction is None:
            raise ValueError("An entry needs a document, a transaction, or both")

        for source in (document, transaction):
            if source is not None and source.company_id != company_id:
                raise ValueError(
                    f"{type(source).__name__} {source.id} does not belong to company {company_id}"
                )

        if document is not None and document.status != DocumentStatus.DONE:
            raise ValueError(
                f"Document {document.id} has no extracted fields (status '{document.status.value}')"
            )

        category = document.category if document is not None else DocumentCategory.OTHER
        direction = direction_of(transaction)

        pair = resolve_accounts(category, direction)
        if pair is None:
            raise UnresolvableAccounts(category.value, direction.value)

        if transaction is not None:
            amount = abs(transaction.amount)
            currency = transaction.currency
        else:
            amount = document.amount
            currency = document.currency

        if confidence is None:
            if document is not None and document.confidence is not None:
                confidence = document.confidence
            else:
                confidence = 1.0

        return Entry(
            company_id=company_id,
            transaction_id=transaction.id if transaction else None,
            document_id=document.id if document else None,
            debit_account=pair.debit,
            credit_account=pair.credit,
            amount=amount,
            currency=currency,
            description=self._describe(document, transaction),
            status=EntryStatus.SUGGESTED,
            confidence=max(0.0, min(1.0, confidence)),
        )

    def _describe(
        self,
        document: Optional[Document],
        transaction: Optional[BankTransaction],
    ) -> Optional[str]:
        parts = []
        if document is not None:
            parts.append(document.counterparty or document.file_name)
        if transaction is not None and transaction.description:
            parts.append(transaction.description)
        if not parts:
            return None
        return " | ".join(parts)[:500]
