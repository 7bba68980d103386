"""
Bank Statement Importer

Parses a statement export into BankTransaction rows.

Expected shape (first row is a header and is skipped):
    date,description,amount,currency

- date: YYYY-MM-DD, DD.MM.YYYY or DD/MM/YYYY
- amount: signed, positive for money in. Spaces as thousand separators
  and a decimal comma are tolerated
- currency: optional, defaults to the company base currency

A bad row never aborts the batch. It is reported as a RejectedRow with
its 1-based line number and the reason, and parsing moves on. Rows
holding bytes that are not UTF-8, and lines the CSV reader cannot split,
are rejected the same way. Blank lines are skipped without being reported.
"""

import csv
import io
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator, Optional, Union
from uuid import UUID

from bookkeeper.errors import EmptyBatchError
from bookkeeper.models.ledger import (
    BankTransaction,
    ImportResult,
    RejectedRow,
    RejectReason,
)


DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y")

RawStatement = Union[str, bytes, Iterable[list[str]]]


class RowRejected(Exception):
    """Internal signal carrying why a single row was refused."""

    def __init__(self, reason: RejectReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


def parse_date(value: str) -> date:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise RowRejected(RejectReason.INVALID_DATE, f"Unrecognised or impossible date: {value!r}")


def parse_amount(value: str) -> Decimal:
    cleaned = value.replace(" ", "").replace("\u00a0", "")
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(",", ".")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise RowRejected(RejectReason.INVALID_AMOUNT, f"Amount is not a number: {value!r}")
    if not amount.is_finite():
        raise RowRejected(RejectReason.INVALID_AMOUNT, f"Amount is not finite: {value!r}")
    if amount == 0:
        raise RowRejected(RejectReason.INVALID_AMOUNT, "Amount is zero")
    return amount


def _undecodable(cells: list[str]) -> bool:
    return any("\udc80" <= c <= "\udcff" for cell in cells for c in cell)


def _printable(cells: list[str]) -> list[str]:
    return [
        cell.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
        for cell in cells
    ]


def _rows(raw: RawStatement) -> Iterator[tuple[int, list[str], Optional[RowRejected]]]:
    """
    Yield (line_number, cells, problem) triples, line numbers counting the header.

    Bytes that are not UTF-8 only spoil the rows that contain them, and a
    line the CSV reader cannot split is reported without stopping the rest.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8-sig", "surrogateescape")
    if not isinstance(raw, str):
        for index, cells in enumerate(raw, start=1):
            yield index, list(cells), None
        return

    reader = csv.reader(io.StringIO(raw.lstrip("\ufeff")))
    while True:
        try:
            cells = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            yield reader.line_num, [], RowRejected(
                RejectReason.MISSING_FIELDS, f"Row could not be split into fields: {e}"
            )
            continue

        if _undecodable(cells):
            yield reader.line_num, _printable(cells), RowRejected(
                RejectReason.MISSING_FIELDS, "Row is not valid UTF-8"
            )
        else:
            yield reader.line_num, cells, None


class TransactionImporter:
    """Turns a raw statement into accepted transactions and rejected rows."""

    def parse_row(
        self,
        cells: list[str],
        company_id: UUID,
        imported_by: UUID,
        base_currency: str,
    ) -> BankTransaction:
        """
        Parse one data row.

        Raises:
            RowRejected: With the reason the row cannot be imported
        """
        cells = [c.strip() for c in cells]
        date_raw, description, amount_raw = (cells + ["", "", ""])[:3]
        currency = cells[3] if len(cells) > 3 and cells[3] else base_currency

        missing = [
            name for name, value in (
                ("date", date_raw),
                ("description", description),
                ("amount", amount_raw),
            )
            if not value
        ]
        if missing:
            raise RowRejected(
                RejectReason.MISSING_FIELDS,
                f"Missing {', '.join(missing)}",
            )

        transaction_date = parse_date(date_raw)
        amount = parse_amount(amount_raw)

        currency = currency.upper()
        if len(currency) != 3 or not currency.isalpha():
            raise RowRejected(
                RejectReason.MISSING_FIELDS,
                f"Currency {currency!r} is not a 3-letter code",
            )

        return BankTransaction(
            company_id=company_id,
            imported_by=imported_by,
            transaction_date=transaction_date,
            description=description[:500],
            amount=amount,
            currency=currency,
        )

    def import_batch(
        self,
        raw: RawStatement,
        company_id: UUID,
        imported_by: UUID,
        base_currency: str = "KZT",
    ) -> ImportResult:
        """
        Parse a whole statement.

        Args:
            raw: CSV text (or bytes), or an iterable of already split rows
            company_id: Company that owns the transactions
            imported_by: User running the import
            base_currency: Currency for rows that omit one

        Returns:
            ImportResult with accepted transactions and rejected rows

        Raises:
            EmptyBatchError: If there are no data rows after the header
        """
        result = ImportResult()
        header_seen = False
        data_rows = 0

        for line_number, cells, problem in _rows(raw):
            if problem is None and not any(c.strip() for c in cells):
                continue
            if not header_seen:
                header_seen = True
                continue

            data_rows += 1
            try:
                if problem is not None:
                    raise problem
                result.accepted.append(
                    self.parse_row(cells, company_id, imported_by, base_currency)
                )
            except RowRejected as e:
                result.rejected.append(RejectedRow(
                    line_number=line_number,
                    row=cells,
                    reason=e.reason,
                    message=e.message,
                ))

        if data_rows == 0:
            raise EmptyBatchError("Statement has no data rows after the header")

        return result

