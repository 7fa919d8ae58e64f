from typing import Dict, List, Optional

from ..engine import ValidationError

__all__ = [
    'SubmissionValidationError',
    'RateLimitExceeded',
    'InvalidTransition',
    'SandboxUnavailable',
]


class SubmissionValidationError(ValidationError):
    '''
    a submission was rejected before anything was persisted
    '''


class RateLimitExceeded(SubmissionValidationError):

    def __init__(
        self,
        wait_for: float,
        errors: Optional[Dict[str, List[str]]] = None,
    ):
        self.wait_for = wait_for
        super().__init__(
            f'submit too fast, wait for {wait_for:.2f} seconds',
            errors=errors or {'createdAt': ['submitted too fast']},
        )


class InvalidTransition(ValueError):

    def __init__(self, old, new):
        self.old, self.new = old, new
        super().__init__(f'can not move submission from {old!r} to {new!r}')


class SandboxUnavailable(Exception):
    '''
    no sandbox instance accepted the job
    '''
