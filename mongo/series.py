from datetime import datetime
from typing import Iterable, List, Optional

from . import engine
from . import cache_keys
from .base import MongoBase
from .course import Course
from .engine import SubmissionStatus
from .exercise import Exercise
from .user import User
from .utils import RedisCache

__all__ = ['Series']


class Series(MongoBase, engine=engine.Series):

    def __str__(self):
        return f'series [{self.pk}]'

    @classmethod
    def add(
        cls,
        course: Course,
        name: str,
        exercises: Iterable[Exercise] = (),
        deadline: Optional[datetime] = None,
    ) -> 'Series':
        if not course:
            raise engine.DoesNotExist(f'{course}')
        series = engine.Series(
            course=course.obj,
            name=name,
            exercises=[e.obj for e in exercises],
            deadline=deadline,
        )
        series.save()
        return cls(series)

    @property
    def course_id(self) -> int:
        return self.ref_id('course')

    @property
    def exercise_ids(self) -> List[int]:
        return [*(self.ref_id('exercises') or [])]

    @property
    def course(self) -> Course:
        return Course(self.course_id)

    @classmethod
    def containing(cls, course_id: int, exercise_id: int) -> List['Series']:
        '''
        every series of a course that contains the exercise
        '''
        return [
            cls(series) for series in engine.Series.objects(
                course=course_id,
                exercises=exercise_id,
            )
        ]

    def _completed(self, user: User) -> bool:
        q = {
            'user': user.pk,
            'course': self.course_id,
            'status': SubmissionStatus.CORRECT,
        }
        if self.deadline is not None:
            q['created_at__lt'] = self.deadline
        submissions = engine.Submission.objects(**q).no_dereference()
        solved = submissions.distinct('exercise')
        return set(self.exercise_ids) <= set(solved)

    def completed(self, user: User) -> bool:
        key = cache_keys.SERIES_COMPLETED.format(
            series_id=self.pk,
            user_id=user.pk,
        )
        return RedisCache().fetch(key, lambda: self._completed(user))
