from typing import Any, Dict, Optional

from . import engine
from . import cache_keys
from .base import MongoBase
from .engine import SubmissionStatus
from .utils import RedisCache

__all__ = ['Exercise']


class Exercise(MongoBase, engine=engine.Exercise):

    def __str__(self):
        return f'exercise [{self.pk}]'

    @classmethod
    def add(
        cls,
        name: str,
        judge: str = 'pythia',
        config: Optional[Dict[str, Any]] = None,
    ) -> 'Exercise':
        exercise = engine.Exercise(name=name, judge=judge, config=config or {})
        exercise.save()
        return cls(exercise)

    def _user_count(self, course, extra: Dict[str, Any]) -> int:
        q = {'exercise': self.pk, **extra}
        if course is not None:
            q['course'] = getattr(course, 'pk', course)
        submissions = engine.Submission.objects(**q).no_dereference()
        return len(submissions.distinct('user'))

    def users_correct(self, course=None) -> int:
        key = cache_keys.EXERCISE_USERS_CORRECT.format(
            exercise_id=self.pk,
            course_id=cache_keys.scope(course),
        )
        return RedisCache().fetch(
            key, lambda: self._user_count(
                course,
                {'status': SubmissionStatus.CORRECT},
            ))

    def users_tried(self, course=None) -> int:
        key = cache_keys.EXERCISE_USERS_TRIED.format(
            exercise_id=self.pk,
            course_id=cache_keys.scope(course),
        )
        return RedisCache().fetch(key,
                                  lambda: self._user_count(course, {}))
