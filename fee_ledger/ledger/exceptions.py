# fee_ledger/ledger/exceptions.py

class LedgerError(Exception):
    """Base exception for fee computation errors."""
    pass


class InvariantViolationError(LedgerError):
    """
    Raised when a computed fee schedule does not balance.

    This signals a broken fee structure or split policy, never user error,
    and the offending record must not be persisted.
    """
    def __init__(self, reason: str, total_fee=None, installment_sum=None):
        self.reason = reason
        self.total_fee = total_fee
        self.installment_sum = installment_sum
        super().__init__(f"Fee invariant violated: {reason}")
