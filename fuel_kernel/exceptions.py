"""
Typed Exception Hierarchy for the Fuel Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (route handlers, review tooling, batch relinking scripts) must react
to engine failures by TYPE, not by parsing messages.  Every exception carries:
  1. A CODE class attribute (machine-readable, API-safe)
  2. Structured attributes describing the failure

One deliberate exception to "never parse messages": CancelledTargetError
always contains the word "cancelled" in its message because outer layers
already depend on that substring.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FuelKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidTruckNumberError
    |   +-- InvalidLitersError
    |   +-- UnknownYardError
    |   +-- UnknownCheckpointError
    |   +-- CheckpointNotApplicableError
    |   +-- MissingQuantityError
    |
    +-- JourneyError
    |   +-- JourneyNotFoundError
    |   +-- JourneyAlreadyExistsError
    |   +-- CancelledTargetError
    |   +-- JourneyUnavailableError
    |   +-- JourneyLockedError
    |
    +-- DispenseError
    |   +-- DispenseEventNotFoundError
    |   +-- InvalidDispenseTransitionError
    |   +-- DispenseNotEditableError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|------------------------------------
Validation    | INVALID_TRUCK_NUMBER          | Truck number fails normalization
              | INVALID_LITERS                | Liters missing, zero or negative
              | UNKNOWN_YARD                  | Yard not in the fixed yard set
              | UNKNOWN_CHECKPOINT            | Checkpoint name maps to no slot
              | CHECKPOINT_NOT_APPLICABLE     | Return slot on a going-only journey
              | MISSING_QUANTITY              | No explicit liters, no standard
--------------|-------------------------------|------------------------------------
Journey       | JOURNEY_NOT_FOUND             | Unknown or soft-deleted journey
              | JOURNEY_ALREADY_EXISTS        | Duplicate truck + going DO
              | CANCELLED_TARGET              | Linking/posting to cancelled journey
              | JOURNEY_UNAVAILABLE           | Journey cancelled/deleted mid-post
              | JOURNEY_LOCKED                | Config-dependent step on locked record
--------------|-------------------------------|------------------------------------
Dispense      | DISPENSE_EVENT_NOT_FOUND      | Unknown dispense event id
              | INVALID_DISPENSE_TRANSITION   | State machine violation
              | DISPENSE_NOT_EDITABLE         | Editing a non-pending event
--------------|-------------------------------|------------------------------------
Concurrency   | OPTIMISTIC_LOCK_CONFLICT      | Version changed under the update
--------------|-------------------------------|------------------------------------
Immutability  | IMMUTABILITY_VIOLATION        | Editing/deleting dispense history

===============================================================================
PROPAGATION
===============================================================================

    ValidationError, CancelledTargetError -> returned to caller, never retried
    ConcurrencyError                      -> retried a bounded number of times
    Missing configuration                 -> NOT an exception (record is locked)
    No matching journey                   -> NOT an exception (event stays pending)
"""


class FuelKernelError(Exception):
    """
    Base exception for all fuel kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FUEL_KERNEL_ERROR"


# Validation exceptions


class ValidationError(FuelKernelError):
    """Malformed input, rejected before any state change."""

    code: str = "VALIDATION_ERROR"


class InvalidTruckNumberError(ValidationError):
    """Truck number cannot be normalized to a canonical form."""

    code: str = "INVALID_TRUCK_NUMBER"

    def __init__(self, truck_no: object):
        self.truck_no = truck_no
        super().__init__(f"Invalid truck number: {truck_no!r}")


class InvalidLitersError(ValidationError):
    """Liters value is missing, non-numeric, zero or negative."""

    code: str = "INVALID_LITERS"

    def __init__(self, liters: object, reason: str = "liters must be greater than zero"):
        self.liters = liters
        self.reason = reason
        super().__init__(f"Invalid liters {liters!r}: {reason}")


class UnknownYardError(ValidationError):
    """Yard name is not one of the fixed yards."""

    code: str = "UNKNOWN_YARD"

    def __init__(self, yard: object):
        self.yard = yard
        super().__init__(f"Unknown yard: {yard!r}")


class UnknownCheckpointError(ValidationError):
    """Checkpoint or station name maps to no journey slot."""

    code: str = "UNKNOWN_CHECKPOINT"

    def __init__(self, checkpoint: object):
        self.checkpoint = checkpoint
        super().__init__(f"Unknown checkpoint: {checkpoint!r}")


class CheckpointNotApplicableError(ValidationError):
    """Checkpoint does not apply to the journey's route legs."""

    code: str = "CHECKPOINT_NOT_APPLICABLE"

    def __init__(self, checkpoint: str, going_do: str, reason: str):
        self.checkpoint = checkpoint
        self.going_do = going_do
        self.reason = reason
        super().__init__(
            f"Checkpoint {checkpoint} does not apply to journey {going_do}: {reason}"
        )


class MissingQuantityError(ValidationError):
    """No explicit liters given and the checkpoint has no standard quantity."""

    code: str = "MISSING_QUANTITY"

    def __init__(self, checkpoint: str):
        self.checkpoint = checkpoint
        super().__init__(
            f"Checkpoint {checkpoint} has no standard allocation; liters are required"
        )


# Journey-related exceptions


class JourneyError(FuelKernelError):
    """Base exception for journey record errors."""

    code: str = "JOURNEY_ERROR"


class JourneyNotFoundError(JourneyError):
    """Journey record does not exist or has been soft-deleted."""

    code: str = "JOURNEY_NOT_FOUND"

    def __init__(self, journey_id: str):
        self.journey_id = journey_id
        super().__init__(f"Journey record not found: {journey_id}")


class JourneyAlreadyExistsError(JourneyError):
    """A journey record already exists for this truck and going DO."""

    code: str = "JOURNEY_ALREADY_EXISTS"

    def __init__(self, truck_no: str, going_do: str):
        self.truck_no = truck_no
        self.going_do = going_do
        super().__init__(f"Journey record already exists for {truck_no} / {going_do}")


class CancelledTargetError(JourneyError):
    """
    Attempt to link or post fuel against a cancelled journey record.

    The message always contains "cancelled"; outer layers detect it.
    """

    code: str = "CANCELLED_TARGET"

    def __init__(self, journey_id: str, going_do: str | None = None):
        self.journey_id = journey_id
        self.going_do = going_do
        label = going_do or journey_id
        super().__init__(
            f"Journey record {label} is cancelled. "
            "Cannot link yard fuel to cancelled records."
        )


class JourneyUnavailableError(JourneyError):
    """Journey became cancelled or deleted between match and post."""

    code: str = "JOURNEY_UNAVAILABLE"

    def __init__(self, journey_id: str, reason: str):
        self.journey_id = journey_id
        self.reason = reason
        super().__init__(f"Journey record {journey_id} is unavailable: {reason}")


class JourneyLockedError(JourneyError):
    """Configuration-dependent operation attempted on a locked journey."""

    code: str = "JOURNEY_LOCKED"

    def __init__(self, journey_id: str, pending_config_reason: str | None, operation: str):
        self.journey_id = journey_id
        self.pending_config_reason = pending_config_reason
        self.operation = operation
        super().__init__(
            f"Journey record {journey_id} is locked ({pending_config_reason}); "
            f"{operation} requires complete configuration"
        )


# Dispense-related exceptions


class DispenseError(FuelKernelError):
    """Base exception for dispense event errors."""

    code: str = "DISPENSE_ERROR"


class DispenseEventNotFoundError(DispenseError):
    """Dispense event does not exist."""

    code: str = "DISPENSE_EVENT_NOT_FOUND"

    def __init__(self, dispense_event_id: str):
        self.dispense_event_id = dispense_event_id
        super().__init__(f"Dispense event not found: {dispense_event_id}")


class InvalidDispenseTransitionError(DispenseError):
    """Requested status change is not allowed from the current status."""

    code: str = "INVALID_DISPENSE_TRANSITION"

    def __init__(self, dispense_event_id: str, from_status: str, to_status: str):
        self.dispense_event_id = dispense_event_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Dispense event {dispense_event_id} cannot move from "
            f"{from_status} to {to_status}"
        )


class DispenseNotEditableError(DispenseError):
    """Only pending dispense events may have their recorded facts edited."""

    code: str = "DISPENSE_NOT_EDITABLE"

    def __init__(self, dispense_event_id: str, status: str):
        self.dispense_event_id = dispense_event_id
        self.status = status
        super().__init__(
            f"Dispense event {dispense_event_id} is {status}; "
            "only pending events can be edited"
        )


# Concurrency-related exceptions


class ConcurrencyError(FuelKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(FuelKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
