from typing import Any, Dict

from . import engine
from . import cache_keys
from .base import MongoBase
from .engine import Role, SubmissionStatus
from .utils import RedisCache

__all__ = ['User', 'Role']


class User(MongoBase, engine=engine.User):

    def __new__(cls, pk, *args, **kwargs):
        # a username is accepted in place of the id
        if isinstance(pk, str):
            user = engine.User.objects(username=pk).first()
            pk = -1 if user is None else user
        return super().__new__(cls, pk)

    def __str__(self):
        return f'user [{self.pk}]'

    @classmethod
    def add(cls, username: str, role: int = Role.STUDENT) -> 'User':
        '''
        Raises:
            ValidationError: bad username or role
            NotUniqueError: the username is taken
        '''
        user = engine.User(username=username, role=role)
        user.save()
        return cls(user)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.STAFF)

    @property
    def info(self) -> Dict[str, Any]:
        return {
            'id': self.pk,
            'username': self.username,
            'role': self.role,
        }

    def _exercise_count(self, course, extra: Dict[str, Any]) -> int:
        q = {'user': self.pk, **extra}
        if course is not None:
            q['course'] = getattr(course, 'pk', course)
        submissions = engine.Submission.objects(**q).no_dereference()
        return len(submissions.distinct('exercise'))

    def attempted_exercises(self, course=None) -> int:
        key = cache_keys.USER_ATTEMPTED_EXERCISES.format(
            user_id=self.pk,
            course_id=cache_keys.scope(course),
        )
        return RedisCache().fetch(key, lambda: self._exercise_count(
            course,
            {},
        ))

    def correct_exercises(self, course=None) -> int:
        key = cache_keys.USER_CORRECT_EXERCISES.format(
            user_id=self.pk,
            course_id=cache_keys.scope(course),
        )
        return RedisCache().fetch(
            key, lambda: self._exercise_count(
                course,
                {'status': SubmissionStatus.CORRECT},
            ))

    def _exercise_status(self, exercise, course) -> str:
        q = {'user': self.pk, 'exercise': getattr(exercise, 'pk', exercise)}
        if course is not None:
            q['course'] = getattr(course, 'pk', course)
        submissions = engine.Submission.objects(**q)
        if submissions.filter(status=SubmissionStatus.CORRECT).count():
            return SubmissionStatus.CORRECT.label
        terminal = [s for s in SubmissionStatus if s.is_terminal]
        last = submissions.filter(status__in=terminal).order_by('-id').only(
            'status').first()
        if last is not None:
            return SubmissionStatus(last.status).label
        return 'attempted' if submissions.count() else 'unstarted'

    def exercise_status(self, exercise, course=None) -> str:
        '''
        "correct" once the user solved the exercise, else the status of the
        latest judged submission, "attempted" while nothing is judged yet
        and "unstarted" without any submission
        '''
        key = cache_keys.USER_EXERCISE_STATUS.format(
            user_id=self.pk,
            exercise_id=getattr(exercise, 'pk', exercise),
            course_id=cache_keys.scope(course),
        )
        return RedisCache().fetch(
            key, lambda: self._exercise_status(exercise, course))
