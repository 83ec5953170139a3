class PatientNotFoundError(Exception):
    def __init__(self, patient_id: int):
        self.patient_id = patient_id
        super().__init__(f"Patient {patient_id} not found")


class AppointmentNotFoundError(Exception):
    def __init__(self, appointment_id: int):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} not found")


class MessageNotFoundError(Exception):
    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"Message {message_id} not found")


class AppointmentConflictError(Exception):
    def __init__(self, reason: str = "Overlapping appointment exists"):
        self.reason = reason
        super().__init__(reason)


class UnauthorizedActionError(Exception):
    """Raised when a caller acts on a resource it is not part of. Never swallowed."""

    def __init__(self, reason: str, details: dict = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(f"Unauthorized: {reason}")


class DoctorNotFoundError(Exception):
    def __init__(self, doctor_id: int):
        self.doctor_id = doctor_id
        super().__init__(f"Doctor {doctor_id} not found")
