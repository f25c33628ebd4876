"""Error taxonomy for the scheduling engine.

Unknown ids are not errors here: store operations return None/False for them.
"""

from __future__ import annotations


class CadenceError(Exception):
    """Base class for all engine errors."""


class ValidationError(CadenceError):
    """Missing or invalid fields on create/update. Nothing is applied."""


class RecurrenceConfigError(ValidationError):
    """A custom rule references a hook that is not registered."""


class FormatError(CadenceError, ValueError):
    """Offset or preset text that does not match the duration grammar."""


class DispatchFailure(CadenceError):
    """The native notification channel could not deliver a notification."""


class PersistenceError(CadenceError):
    """Stored state could not be read, validated or written."""
