"""
Bookkeeper

Reconciliation and ledger-entry backend for small-business bookkeeping.
Uploaded documents are matched against imported bank transactions and
turned into suggested double-entry records that a human confirms.

DESIGN PRINCIPLES:
1. System suggests → Human confirms → Books are updated
2. Every operation is scoped to an explicit company
3. A bank transaction is claimed by at most one document
4. Stage failures are reported, never swallowed
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Bookkeeper Team"
