"""
Exception hierarchy for formstate.

Only programming mistakes are raised across the public API. Validation
failures are data (error maps), and malformed intents are treated as no-ops.
"""


class FormStateError(Exception):
    """Base class for all formstate errors."""


class FormContextError(FormStateError):
    """Form state was requested outside a scope that provides the form."""

    def __init__(self, form_id: str):
        self.form_id = form_id
        super().__init__(f"Form context is not available for form id {form_id!r}")


class PathError(FormStateError, ValueError):
    """A path name could not be parsed."""


class InvalidIntentError(FormStateError, ValueError):
    """An intent payload is missing fields or has the wrong shape.

    Raised while decoding; the decoder turns it into "no intent".
    """
