from typing import Iterable, List

from . import engine
from . import cache_keys
from .base import MongoBase
from .engine import SubmissionStatus
from .user import User
from .utils import RedisCache

__all__ = [
    'Course',
]


class Course(MongoBase, engine=engine.Course):

    def __str__(self):
        return f'course [{self.pk}]'

    @classmethod
    def add(
        cls,
        name: str,
        admins: Iterable[User] = (),
        students: Iterable[User] = (),
    ) -> 'Course':
        course = engine.Course(
            name=name,
            admins=[u.obj for u in admins],
            students=[u.obj for u in students],
        )
        course.save()
        return cls(course)

    def add_student(self, user: User):
        if not self:
            raise engine.DoesNotExist(f'{self}')
        self.update(add_to_set__students=user.obj)

    def add_admin(self, user: User):
        if not self:
            raise engine.DoesNotExist(f'{self}')
        self.update(add_to_set__admins=user.obj)

    def is_admin(self, user: User) -> bool:
        return bool(user) and user.pk in self.admin_ids()

    def admin_ids(self) -> List[int]:
        return [*(self.ref_id('admins') or [])]

    def correct_solutions(self) -> int:
        key = cache_keys.COURSE_CORRECT_SOLUTIONS.format(course_id=self.pk)
        return RedisCache().fetch(
            key,
            lambda: engine.Submission.objects(
                course=self.pk,
                status=SubmissionStatus.CORRECT,
            ).count(),
        )
