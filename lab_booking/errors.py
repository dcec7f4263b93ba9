from __future__ import annotations


class LabBookingError(Exception):
    """Base class for business-rule failures reported back to the caller."""

    status_code = 400
    error_code = "lab_booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LabBookingError):
    status_code = 400
    error_code = "validation_error"


class NotFoundError(LabBookingError):
    status_code = 404
    error_code = "not_found"


class UnknownLabError(NotFoundError, ValidationError):
    # An exam period referencing a lab that does not exist.
    error_code = "unknown_lab"


class DateRangeError(LabBookingError):
    status_code = 400
    error_code = "date_range_error"


class ConflictError(LabBookingError):
    status_code = 409
    error_code = "conflict"


class LabBookingStorageError(LabBookingError, RuntimeError):
    status_code = 500
    error_code = "internal_error"
