# fee_ledger/fee_structures/exceptions.py

class FeeStructureError(Exception):
    """Base exception for fee structure registry errors."""
    pass


class FeeStructureNotFoundError(FeeStructureError):
    """Raised when a class has no fee structure for the period."""
    def __init__(self, class_id: int, period_id: int):
        self.class_id = class_id
        self.period_id = period_id
        super().__init__(
            f"No fee structure configured for class '{class_id}' in period '{period_id}'."
        )


class TransportFeeNotFoundError(FeeStructureError):
    """Raised when one or more route/slab combinations have no transport fee."""
    def __init__(self, period_id: int, route_slabs: list):
        self.period_id = period_id
        self.route_slabs = route_slabs
        pairs = ", ".join(f"route {r} / slab {s}" for r, s in route_slabs)
        super().__init__(f"No transport fee configured in period '{period_id}' for {pairs}.")


class FeeStructureValidationError(FeeStructureError):
    """Raised when fee structure data is invalid."""
    pass
