"""Credit ledger: append-only verification records and balances."""

from bulkverify.ledger.store import CreditBalance, CreditLedger, LedgerPage, LedgerSource

__all__ = [
    "CreditBalance",
    "CreditLedger",
    "LedgerPage",
    "LedgerSource",
]
