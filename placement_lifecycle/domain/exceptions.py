"""Domain-specific exceptions"""

from typing import List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    user_friendly: Optional[str] = None

    def __init__(self, message: str, user_friendly: Optional[str] = None):
        super().__init__(message)
        if user_friendly is not None:
            self.user_friendly = user_friendly


class ApplicationNotFoundError(DomainException):
    """Application does not exist within the caller's company"""

    pass


class ClientNotFoundError(DomainException):
    """Client does not exist within the caller's company"""

    pass


class CandidateNotFoundError(DomainException):
    """Candidate does not exist within the caller's company"""

    pass


class SettingNotFoundError(DomainException):
    """Business setting does not exist within the caller's company"""

    pass


class InvalidTransition(DomainException):
    """Requested status is not an outgoing edge of the current status"""

    def __init__(self, message: str, valid_next_states: Optional[List[str]] = None):
        super().__init__(message, "This status change is not allowed from the current stage.")
        self.valid_next_states = valid_next_states or []


class MissingRequiredDate(DomainException):
    """Transition requires a date captured from a physical document"""

    def __init__(self, field_name: str):
        super().__init__(
            f"{field_name} is required for this status transition",
            f"Please provide the {field_name.replace('_', ' ')} before continuing.",
        )
        self.field_name = field_name


class DocumentsIncomplete(DomainException):
    """Required documents of the current stage are still outstanding"""

    def __init__(self, missing_documents: List[str]):
        super().__init__(
            f"Required documents incomplete: {', '.join(missing_documents)}",
            "Some required documents are still pending. Please complete them before moving forward.",
        )
        self.missing_documents = missing_documents


class IllegalCancellation(DomainException):
    """Cancellation type is not available for the application's current status"""

    user_friendly = "This cancellation option is no longer available. Please refresh the cancellation options."


class MixedCurrencyUnsupported(DomainException):
    """A single total was requested over payments in more than one currency"""

    def __init__(self, currencies: List[str]):
        super().__init__(
            f"Cannot blend totals across currencies: {', '.join(sorted(currencies))}",
            "Payments were recorded in more than one currency; a refund cannot be computed automatically.",
        )
        self.currencies = currencies


class MissingDeportationTemplate(DomainException):
    """No active deportation fee template is configured"""

    user_friendly = "No deportation fee template is configured. Ask a Super Admin to add one in business settings."


class SameClientTransfer(DomainException):
    """Guarantor change targets the application's current client"""

    user_friendly = "The new client must be different from the current client."


class DuplicateActiveSetting(DomainException):
    """Another active setting already exists for the same key"""

    pass


class PersistenceFailure(DomainException):
    """Transaction aborted by the database; the whole operation may be retried"""

    user_friendly = "The operation could not be saved. Please try again."
