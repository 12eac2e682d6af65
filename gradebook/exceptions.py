"""
Errors raised by the grading engine.

Every error carries a machine-readable ``code``, a human ``message`` and an
optional ``hint`` for the person entering grades, so views can pass them
straight into a JSON envelope.
"""


class GradingError(Exception):
    code = 'grading_error'

    def __init__(self, message, code=None, hint=''):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.hint = hint

    def as_dict(self):
        data = {'code': self.code, 'message': self.message}
        if self.hint:
            data['hint'] = self.hint
        return data


class ContextValidationError(GradingError):
    """The batch-level grading context is invalid. Nothing was written."""
    code = 'invalid_context'

    def __init__(self, message, errors=None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or {}

    def as_dict(self):
        data = super().as_dict()
        data['errors'] = self.errors
        return data


class EntityNotFoundError(GradingError):
    """A referenced record does not exist."""
    code = 'not_found'


class LedgerValidationError(GradingError):
    """A single ledger value was rejected."""
    code = 'invalid_value'


class OrdinalOutOfRange(GradingError):
    """A season's ordinal has no display label."""
    code = 'season_out_of_range'
