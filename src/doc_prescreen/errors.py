"""Error taxonomy for the pre-screening pipeline.

Only ConfigurationError raised while loading the registry is meant to be fatal.
Everything else is caught by the stage that owns the document and turned into an
issue string on that document's ValidationResult.
"""


class PrescreenError(Exception):
    """Base class for all pre-screening errors."""


class ConfigurationError(PrescreenError):
    """Rule registry is unreadable, schema-invalid, or a document key is unknown."""


class InputError(PrescreenError):
    """A document or applicant file given on input could not be used."""


class DecodeError(PrescreenError):
    """Image bytes could not be decoded into pixels."""


class ServiceError(PrescreenError):
    """Remote verification service unreachable, timed out, or answered badly."""
