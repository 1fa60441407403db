"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed or logically inconsistent; the whole run is rejected"""

    def __init__(self, message: str, record_type: str | None = None, record_id: str | None = None):
        self.record_type = record_type
        self.record_id = record_id
        if record_type and record_id:
            message = f"{record_type} {record_id}: {message}"
        super().__init__(message)


class IncompleteDataError(DomainException):
    """A single record lacks fields needed for interest or classification"""

    def __init__(self, message: str, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id}: {message}")


class ConfigurationError(DomainException):
    """Engine configuration is invalid (bands, override rules, options)"""

    pass


class ApplyConflictError(DomainException):
    """Another category apply for the same customer is still in flight"""

    pass
