# fee_ledger/promotions/exceptions.py

class PromotionError(Exception):
    """Base exception for promotion eligibility checks."""
    pass


class PromotionValidationError(PromotionError):
    """Raised when an enrollment cannot be checked for the requested period."""
    pass
