from __future__ import annotations


class RulesAppError(Exception):
    """Base class for errors raised by the rules core."""


class ExtractionError(RulesAppError):
    """The PDF could not be opened or read."""


class InvalidSearchRequest(RulesAppError, ValueError):
    """Search parameters rejected before the index is queried."""


class InvalidTransition(RulesAppError):
    """Override mapping lifecycle violation (e.g. Confirmed -> Rejected)."""


class MappingNotFound(RulesAppError, KeyError):
    pass


class CompletionUnavailable(RulesAppError):
    """The completion service failed, timed out or answered with garbage."""
