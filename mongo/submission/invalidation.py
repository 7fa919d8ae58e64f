'''
Which cached aggregates a submission mutation makes stale, and dropping them.
'''
import logging
from typing import Iterable, List, NamedTuple, Optional

from .. import cache_keys
from ..series import Series
from ..utils import RedisCache

__all__ = [
    'SubmissionSnapshot',
    'InvalidationTarget',
    'invalidation_targets',
    'CacheInvalidationSink',
]

logger = logging.getLogger(__name__)


class SubmissionSnapshot(NamedTuple):
    submission_id: Optional[int]
    user_id: int
    exercise_id: int
    course_id: Optional[int]


class InvalidationTarget(NamedTuple):
    kind: str
    entity_id: int
    key: str


def invalidation_targets(
    snapshot: SubmissionSnapshot,
    series_ids: Iterable[int] = (),
) -> List[InvalidationTarget]:
    '''
    every cache key a change of `snapshot` can make stale, in the order
    they are dropped

    Args:
        snapshot: the submission state, before or after the change
        series_ids: series of the submission's course containing its exercise
    '''
    scopes = [cache_keys.scope(None)]
    if snapshot.course_id is not None:
        scopes.append(cache_keys.scope(snapshot.course_id))
    targets = []
    for course_id in scopes:
        for template in (
                cache_keys.EXERCISE_USERS_CORRECT,
                cache_keys.EXERCISE_USERS_TRIED,
        ):
            targets.append(
                InvalidationTarget(
                    'exercise',
                    snapshot.exercise_id,
                    template.format(
                        exercise_id=snapshot.exercise_id,
                        course_id=course_id,
                    ),
                ))
    for course_id in scopes:
        for template in (
                cache_keys.USER_ATTEMPTED_EXERCISES,
                cache_keys.USER_CORRECT_EXERCISES,
                cache_keys.USER_EXERCISE_STATUS,
        ):
            targets.append(
                InvalidationTarget(
                    'user',
                    snapshot.user_id,
                    template.format(
                        user_id=snapshot.user_id,
                        exercise_id=snapshot.exercise_id,
                        course_id=course_id,
                    ),
                ))
    if snapshot.course_id is not None:
        for series_id in series_ids:
            targets.append(
                InvalidationTarget(
                    'series',
                    series_id,
                    cache_keys.SERIES_COMPLETED.format(
                        series_id=series_id,
                        user_id=snapshot.user_id,
                    ),
                ))
        targets.append(
            InvalidationTarget(
                'course',
                snapshot.course_id,
                cache_keys.COURSE_CORRECT_SOLUTIONS.format(
                    course_id=snapshot.course_id),
            ))
    return targets


class CacheInvalidationSink:
    '''
    Drops cached values; the next read recomputes them.

    Never raises: a cache outage only costs a stale read.
    '''

    def __init__(self, cache: Optional[RedisCache] = None):
        self.cache = cache

    def apply(self, targets: Iterable[InvalidationTarget]) -> int:
        keys = [t.key for t in targets]
        if not keys:
            return 0
        try:
            dropped = (self.cache or RedisCache()).delete(*keys)
        except Exception as e:
            logger.warning(f'failed to invalidate {len(keys)} keys: {e}')
            return 0
        logger.debug(f'invalidated {dropped}/{len(keys)} cached aggregates')
        return dropped

    def invalidate(self, snapshot: SubmissionSnapshot) -> int:
        '''
        look up the series of the snapshot and drop every stale key
        '''
        series_ids = []
        if snapshot.course_id is not None:
            series_ids = [
                s.pk for s in Series.containing(
                    snapshot.course_id,
                    snapshot.exercise_id,
                )
            ]
        return self.apply(invalidation_targets(snapshot, series_ids))
