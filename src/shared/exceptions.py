"""Custom exceptions for the NeuroNote extraction and scoring engine."""


class NeuroNoteException(Exception):
    """Base exception for all NeuroNote errors."""
    pass


# Extraction Pipeline Exceptions

class ExtractionException(NeuroNoteException):
    """Base exception for extraction errors."""
    pass


class EmptyNoteError(ExtractionException):
    """Input note is empty or carries no parseable text."""
    pass


class AmbiguousNegationScope(ExtractionException):
    """A negation trigger may or may not reach an entity.

    Raised and handled inside the negation detector; the entity is kept
    with reduced confidence.
    """

    def __init__(self, trigger: str, entity: str, reason: str = ""):
        self.trigger = trigger
        self.entity = entity
        self.reason = reason
        super().__init__(
            f"Ambiguous negation scope: '{trigger}' -> '{entity}'"
            + (f" ({reason})" if reason else "")
        )


class TemporalResolutionFailure(ExtractionException):
    """Date text could not be parsed or placed on the timeline."""

    def __init__(self, text: str, reason: str = ""):
        self.text = text
        self.reason = reason
        super().__init__(
            f"Cannot resolve date '{text}'" + (f": {reason}" if reason else "")
        )


# Quality Scoring Exceptions

class ScoringException(NeuroNoteException):
    """Base exception for quality scoring errors."""
    pass


# Narrative Provider Exceptions

class NarrativeException(NeuroNoteException):
    """Base exception for narrative generation errors."""
    pass


class ProviderError(NarrativeException):
    """Error returned by a narrative (text-completion) provider."""

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderTimeout(ProviderError):
    """Provider did not answer within the configured timeout."""
    pass


class MalformedProviderResponse(ProviderError):
    """Provider answered with output that cannot be parsed into sections."""
    pass


class ProviderUnavailable(ProviderError):
    """Provider circuit is open; the call was not attempted."""
    pass


class APIKeyError(ProviderError):
    """API key missing or invalid."""
    pass


# Configuration Exceptions

class ConfigurationError(NeuroNoteException):
    """Error in configuration."""
    pass
