# fee_ledger/reports/exceptions.py

class ReportError(Exception):
    """Base exception for fee report errors."""
    pass


class ReportValidationError(ReportError):
    """Raised when report filters or pagination parameters are invalid."""
    pass
