"""Error kinds raised by the booking engine and its collaborators.

The HTTP layer maps each family onto a response: not-found errors to 404,
conflicts and validation failures to 400, credential failures to 401.
"""


class BookingDeskError(Exception):
    """Base class for every error the engine surfaces to its callers."""

    default_message = "Booking desk error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(BookingDeskError):
    default_message = "Not found"


class ServiceNotFound(NotFoundError):
    default_message = "Service not found"


class ReservationNotFound(NotFoundError):
    default_message = "Reservation not found"


class ManagerNotFound(NotFoundError):
    default_message = "Manager user not found"


class UserNotFound(NotFoundError):
    default_message = "User not found"


class ConflictError(BookingDeskError):
    default_message = "Conflict"


class EmailAlreadyRegistered(ConflictError):
    default_message = "Email is already registered"


class InvalidStatusTransition(ConflictError):
    default_message = "Invalid reservation status transition"


class ServiceInUse(ConflictError):
    default_message = "Service is referenced by reservations"


class InvalidCredentials(BookingDeskError):
    default_message = "Invalid credentials"


class ValidationFailed(BookingDeskError):
    default_message = "Validation failed"
