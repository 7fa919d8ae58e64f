'''
Minimum interval between two submissions of the same user.

Usage:
    limiter = RateLimiter()
    allowed, wait_for = limiter.check(user, now)
    if not allowed:
        raise SubmissionValidationError(...)
'''
from datetime import datetime
from typing import Optional, Tuple

from .. import config
from .. import engine
from ..utils import utcnow

__all__ = ['RateLimiter']


class RateLimiter:
    '''
    Looks at the user's most recent submission across every exercise.

    The interval is read on every call so tests may patch
    `mongo.config.SECONDS_BETWEEN_SUBMISSIONS`.
    '''

    def __init__(self, interval: Optional[float] = None):
        self._interval = interval

    @property
    def interval(self) -> float:
        if self._interval is not None:
            return self._interval
        return config.SECONDS_BETWEEN_SUBMISSIONS

    def last_submitted_at(self, user) -> Optional[datetime]:
        last = engine.Submission.objects(
            user=getattr(user, 'pk', user)).order_by('-id').only(
                'created_at').first()
        if last is None:
            return None
        return last.created_at

    def check(self, user, now: Optional[datetime] = None) -> Tuple[bool, float]:
        '''
        Returns:
            tuple: (allowed, wait_for)
                - allowed: True if the user may submit at `now`
                - wait_for: seconds until the user may submit (0 if allowed)
        '''
        now = now or utcnow()
        last = self.last_submitted_at(user)
        if last is None:
            return True, 0
        delta = (now - last).total_seconds()
        if delta >= self.interval:
            return True, 0
        return False, self.interval - delta

    def permits(self, user, now: Optional[datetime] = None) -> bool:
        allowed, _ = self.check(user, now)
        return allowed
