"""Typed errors raised by studentml.

Validation errors carry fixed, human-readable messages that API layers
return to clients verbatim.
"""

from __future__ import annotations


class StudentMLError(Exception):
    """Base class for all studentml errors."""


class InvalidInputError(StudentMLError, ValueError):
    """Raised when raw client input cannot be turned into a valid record."""

    message = "Invalid input"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class MissingAttribute(InvalidInputError):
    message = "Missing required attributes"


class InvalidProjectType(InvalidInputError):
    message = "Invalid project type"

    def __init__(self, project_type: object = None):
        if project_type is None:
            super().__init__()
        else:
            super().__init__(f"Invalid project type {project_type}")


InvalidType = InvalidProjectType


class UnsupportedLanguage(InvalidInputError):
    message = "Language not supported"


class NotEnoughChoices(InvalidInputError):
    message = "Not enough choices provided"


class TooManyChoices(InvalidInputError):
    message = "Too many choices specified"


class InvalidChoice(InvalidInputError):
    message = "Invalid choice value"


class TooManyFields(InvalidInputError):
    message = "Too many fields specified"


class InvalidFieldType(InvalidInputError):
    message = "Invalid field type"


class FieldsNotSupported(InvalidInputError):
    message = "Fields not supported for non-numbers projects"


class NonNumericData(InvalidInputError):
    message = "Data contains non-numeric items"


class TooManyItems(InvalidInputError):
    message = "Number of data items exceeded maximum"


class NumberDataMismatch(InvalidInputError):
    message = "Number of data items does not match the project fields"


class UrlTooLong(InvalidInputError):
    message = "Image URL exceeds maximum allowed length (1024 characters)"

    def __init__(self, max_length: int = 1024):
        super().__init__(
            f"Image URL exceeds maximum allowed length ({max_length} characters)"
        )


class InvalidServiceType(InvalidInputError):
    message = "Invalid service type"


class InvalidApiKey(InvalidInputError):
    message = "Invalid API key"


class InvalidCredentials(InvalidInputError):
    message = "Invalid credentials"


class MissingClassId(InvalidInputError):
    message = "Missing required class id"


class InvalidClassId(InvalidInputError):
    message = "Not a valid class id"


class LabelCapacityExceeded(InvalidInputError):
    message = "No room for the label"
