"""Bank statement import."""

from bookkeeper.importer.csv_importer import (
    DATE_FORMATS,
    RowRejected,
    TransactionImporter,
    parse_amount,
    parse_date,
)

__all__ = [
    "DATE_FORMATS",
    "RowRejected",
    "TransactionImporter",
    "parse_amount",
    "parse_date",
]
