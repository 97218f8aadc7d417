"""Typed domain errors raised by services.

All subclass ValueError so callers that only know the generic contract
still treat them as client errors.
"""


class SchedulingConflictError(ValueError):
    """The doctor already has an overlapping booking."""

    def __init__(self, message: str, conflicting_appointment_id=None):
        self.conflicting_appointment_id = conflicting_appointment_id
        super().__init__(message)


class DuplicateCurpError(ValueError):
    """Another patient in the clinic is registered with this CURP."""

    def __init__(self, curp: str):
        self.curp = curp
        super().__init__(f"CURP {curp} is already registered")


class InvoiceNotDeletableError(ValueError):
    """Invoice is paid or has payments and must be kept."""


class PaymentNotAllowedError(ValueError):
    """Invoice does not accept payments in its current status."""


class PrescriptionExistsError(ValueError):
    """The medical note already has a prescription."""

    def __init__(self, medical_note_id):
        self.medical_note_id = medical_note_id
        super().__init__(f"Medical note {medical_note_id} already has a prescription")
