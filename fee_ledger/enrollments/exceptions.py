# fee_ledger/enrollments/exceptions.py

class EnrollmentError(Exception):
    """Base exception for enrollment directory lookups."""
    pass


class EnrollmentNotFoundError(EnrollmentError):
    """Raised when an enrollment does not exist in the caller's branch."""
    def __init__(self, enrollment_id: int):
        self.enrollment_id = enrollment_id
        super().__init__(f"Enrollment with ID '{enrollment_id}' not found.")
