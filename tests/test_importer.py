"""Tests for the bank statement importer."""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeper.errors import EmptyBatchError
from bookkeeper.importer import TransactionImporter
from bookkeeper.importer.csv_importer import RowRejected, parse_amount, parse_date
from bookkeeper.models.ledger import RejectReason


STATEMENT = """date,description,amount,currency
2024-03-11,Payment Kazakhtelecom JSC,-15000,KZT
2024-03-12,Customer transfer,250000,KZT
12.03.2024,Office rent,-180 000,KZT
13/03/2024,Card refund,"1500,50",
2024-03-14,Consulting fee,-120.00,USD
2024-02-30,Impossible date,-100,KZT
2024-03-15,Broken amount,abc,KZT
"""


@pytest.fixture
def importer():
    return TransactionImporter()


class TestParsers:
    """Tests for the date and amount parsers."""

    @pytest.mark.parametrize("raw", ["2024-03-11", "11.03.2024", "11/03/2024"])
    def test_supported_date_formats(self, raw):
        assert parse_date(raw) == date(2024, 3, 11)

    def test_impossible_date(self):
        with pytest.raises(RowRejected) as exc_info:
            parse_date("2024-02-30")
        assert exc_info.value.reason == RejectReason.INVALID_DATE

    @pytest.mark.parametrize("raw,expected", [
        ("-15000", Decimal("-15000")),
        ("180 000", Decimal("180000")),
        ("1500,50", Decimal("1500.50")),
        ("1 000.25", Decimal("1000.25")),
    ])
    def test_amount_formats(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", "0", "0.00"])
    def test_invalid_amounts(self, raw):
        """Test non-numeric, non-finite and zero amounts are refused."""
        with pytest.raises(RowRejected) as exc_info:
            parse_amount(raw)
        assert exc_info.value.reason == RejectReason.INVALID_AMOUNT


class TestImportBatch:
    """Tests for whole-statement imports."""

    def test_mixed_statement(self, importer, company_id, user_id):
        """Test five good rows are accepted and two bad ones reported."""
        result = importer.import_batch(STATEMENT, company_id, user_id)

        assert result.accepted_count == 5
        assert result.rejected_count == 2
        reasons = {row.line_number: row.reason for row in result.rejected}
        assert reasons == {7: RejectReason.INVALID_DATE, 8: RejectReason.INVALID_AMOUNT}

    def test_accepted_rows_are_unmatched_and_scoped(self, importer, company_id, user_id):
        """Test imported transactions belong to the company and are free to match."""
        result = importer.import_batch(STATEMENT, company_id, user_id)

        for tx in result.accepted:
            assert tx.company_id == company_id
            assert tx.imported_by == user_id
            assert not tx.is_matched
            assert tx.matched_document_id is None

    def test_missing_currency_uses_base(self, importer, company_id, user_id):
        """Test an empty currency cell falls back to the base currency."""
        result = importer.import_batch(STATEMENT, company_id, user_id, base_currency="KZT")

        refund = next(tx for tx in result.accepted if tx.description == "Card refund")
        assert refund.currency == "KZT"
        assert refund.amount == Decimal("1500.50")

        fee = next(tx for tx in result.accepted if tx.description == "Consulting fee")
        assert fee.currency == "USD"

    def test_missing_fields(self, importer, company_id, user_id):
        """Test short or partially empty rows are MissingFields."""
        raw = "date,description,amount\n2024-03-11,,-100\n2024-03-11\n"
        result = importer.import_batch(raw, company_id, user_id)

        assert result.accepted_count == 0
        assert [r.reason for r in result.rejected] == [RejectReason.MISSING_FIELDS] * 2
        assert "description" in result.rejected[0].message

    def test_bad_currency(self, importer, company_id, user_id):
        """Test a currency cell that is not a 3-letter code is refused."""
        raw = "date,description,amount,currency\n2024-03-11,Fee,-100,TENGE\n"
        result = importer.import_batch(raw, company_id, user_id)
        assert result.rejected[0].reason == RejectReason.MISSING_FIELDS

    def test_blank_lines_are_skipped(self, importer, company_id, user_id):
        """Test blank lines are neither accepted nor rejected but keep line numbers."""
        raw = "date,description,amount\n\n2024-03-11,Fee,-100\n\nbad,Fee,-100\n"
        result = importer.import_batch(raw, company_id, user_id)

        assert result.accepted_count == 1
        assert result.rejected_count == 1
        assert result.rejected[0].line_number == 5

    def test_rejected_row_keeps_original_cells(self, importer, company_id, user_id):
        raw = "date,description,amount\nyesterday,Fee,-100\n"
        result = importer.import_batch(raw, company_id, user_id)
        assert result.rejected[0].row == ["yesterday", "Fee", "-100"]

    def test_header_only_is_empty_batch(self, importer, company_id, user_id):
        """Test a statement with only a header is an error, not an empty result."""
        with pytest.raises(EmptyBatchError):
            importer.import_batch("date,description,amount,currency\n", company_id, user_id)

    def test_empty_input_is_empty_batch(self, importer, company_id, user_id):
        with pytest.raises(EmptyBatchError):
            importer.import_batch("", company_id, user_id)

    def test_bytes_with_bom(self, importer, company_id, user_id):
        """Test UTF-8 exports with a byte order mark are read."""
        raw = "\ufeffdate,description,amount\n2024-03-11,Оплата услуг,-100\n".encode("utf-8")
        result = importer.import_batch(raw, company_id, user_id)
        assert result.accepted[0].description == "Оплата услуг"

    def test_non_utf8_row_is_rejected_alone(self, importer, company_id, user_id):
        """Test a cp1251 byte spoils only its own row."""
        raw = (
            b"date,description,amount,currency\n"
            b"2024-03-11,Good row,-100,KZT\n"
            b"2024-03-12,Caf\xe9,-200,KZT\n"
            b"2024-03-13,Another good row,-300,KZT\n"
        )
        result = importer.import_batch(raw, company_id, user_id)

        assert [t.description for t in result.accepted] == ["Good row", "Another good row"]
        rejected = result.rejected[0]
        assert rejected.line_number == 3
        assert rejected.reason == RejectReason.MISSING_FIELDS
        assert "UTF-8" in rejected.message
        assert rejected.row[1] == "Caf\ufffd"

    def test_oversized_field_is_rejected_alone(self, importer, company_id, user_id):
        """Test a row the CSV reader refuses does not stop the rows around it."""
        raw = (
            "date,description,amount,currency\n"
            "2024-03-11,Fee,-100,KZT\n"
            f"2024-03-12,{'x' * 200_000},-200,KZT\n"
            "2024-03-13,Fee,-300,KZT\n"
        )
        result = importer.import_batch(raw, company_id, user_id)

        assert result.accepted_count == 2
        assert result.rejected_count == 1
        assert result.rejected[0].line_number == 3
        assert result.rejected[0].row == []

    def test_pre_split_rows(self, importer, company_id, user_id):
        """Test rows already split into cells are accepted."""
        rows = [
            ["date", "description", "amount"],
            ["2024-03-11", "Fee", "-100"],
            ["2024-03-12", "Fee", "zero"],
        ]
        result = importer.import_batch(rows, company_id, user_id)
        assert result.accepted_count == 1
        assert result.rejected[0].line_number == 3
