# fee_ledger/balances/exceptions.py

class BalanceError(Exception):
    """Base exception for all fee balance errors."""
    pass


class BalanceValidationError(BalanceError):
    """Raised when input is malformed; nothing has been read or written."""
    pass


class BalanceNotFoundError(BalanceError):
    """Raised when a balance record does not exist in the caller's branch."""
    def __init__(self, balance_id: int = None, enrollment_id: int = None, period_id: int = None, kind: str = None):
        self.balance_id = balance_id
        self.enrollment_id = enrollment_id
        self.period_id = period_id
        label = f"{kind} balance" if kind else "Balance"
        if balance_id is not None:
            super().__init__(f"{label.capitalize()} with ID '{balance_id}' not found.")
        elif enrollment_id is not None:
            super().__init__(
                f"No {label.lower()} record for enrollment '{enrollment_id}' in period '{period_id}'. "
                "Initialize balances before posting payments."
            )
        else:
            super().__init__(f"{label.capitalize()} not found.")


class OverpaymentError(BalanceError):
    """Raised when a payment is larger than what remains on its target."""
    def __init__(self, balance_id: int, target: str, amount, remaining):
        self.balance_id = balance_id
        self.target = target
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment of {amount} exceeds the remaining {target} balance of {remaining} "
            f"on balance '{balance_id}'."
        )


class BalanceConflictError(BalanceError):
    """Raised when a balance record changed underneath the caller; retry with fresh data."""
    def __init__(self, balance_id: int, reason: str = None):
        self.balance_id = balance_id
        super().__init__(
            reason or f"Balance '{balance_id}' was modified by another transaction. Reload and retry."
        )


class ConcessionLockedError(BalanceError):
    """Raised when a concession change is attempted after payments were recorded."""
    def __init__(self, balance_id: int):
        self.balance_id = balance_id
        super().__init__(
            f"Concession on balance '{balance_id}' cannot change once a term has payments."
        )


class PaymentOrderError(BalanceValidationError):
    """Raised when a term is paid ahead of an earlier term or of the book fee."""
    pass
