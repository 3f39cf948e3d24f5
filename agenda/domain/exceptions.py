class SchedulingError(Exception):
    """Base exception for all scheduling errors."""


class NotFoundError(SchedulingError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found" + (f": {entity_id}" if entity_id else ""))


class ConflictError(SchedulingError):
    """Raised when a time slot is unavailable or a write would break an invariant."""

    def __init__(self, reason: str, appointment_id: str | None = None) -> None:
        self.reason = reason
        self.appointment_id = appointment_id
        super().__init__(reason)


class BadRequestError(SchedulingError):
    """Raised for invalid state transitions and malformed input."""


class InvalidTimeFormatError(BadRequestError):
    """Raised when a wall-clock time cannot be parsed as ``HH:MM``."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid time format: {value!r}. Expected HH:MM.")


class StoreUnavailableError(SchedulingError):
    """Raised when the persistent store is unreachable or fails mid-operation."""


class ReminderDeliveryError(SchedulingError):
    """Raised by a reminder sender when a reminder cannot be delivered."""

    def __init__(self, reason: str, reminder_id: str | None = None) -> None:
        self.reason = reason
        self.reminder_id = reminder_id
        super().__init__(f"Failed to deliver reminder: {reason}")
