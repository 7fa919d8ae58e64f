import secrets
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from mongo import *
from mongo import config, engine
from mongoengine import disconnect
from mongo.submission import Runner
from mongo.utils import RedisCache, jwt_encode

__all__ = [
    'drop_db',
    'random_string',
    'create_user',
    'create_course',
    'create_exercise',
    'create_series',
    'create_submission',
    'cookie_of',
    'FakeRunner',
    'CORRECT_PAYLOAD',
]

CORRECT_PAYLOAD = {
    'status': 'correct answer',
    'accepted': True,
    'description': 'OK',
    'groups': [],
}


def drop_db():
    # a new connection also drops the cached collections and their indexes
    disconnect(alias='default')
    conn = engine.connect_db()
    conn.drop_database(config.MONGO_DB)
    RedisCache().client.flushall()


def random_string(k: int = 8) -> str:
    return secrets.token_hex(k)[:k]


def create_user(
    username: Optional[str] = None,
    role: Role = Role.STUDENT,
) -> User:
    return User.add(username or random_string(), role)


def create_course(
    name: Optional[str] = None,
    admins: Iterable[User] = (),
    students: Iterable[User] = (),
) -> Course:
    return Course.add(name or random_string(), admins, students)


def create_exercise(
    name: Optional[str] = None,
    judge: str = 'pythia',
    config: Optional[Dict[str, Any]] = None,
) -> Exercise:
    return Exercise.add(name or random_string(), judge, config)


def create_series(
    course: Course,
    exercises: Iterable[Exercise] = (),
    deadline: Optional[datetime] = None,
) -> Series:
    return Series.add(course, random_string(), exercises, deadline)


def create_submission(
    user: Optional[User] = None,
    exercise: Optional[Exercise] = None,
    course: Optional[Course] = None,
    code: str = 'print(1)',
    evaluate: bool = False,
    **ks,
) -> Submission:
    '''
    create a submission, skipping the rate limit unless told otherwise
    '''
    ks.setdefault('skip_rate_limit_check', True)
    return Submission.add(
        exercise=exercise or create_exercise(),
        user=user or create_user(),
        course=course,
        code=code,
        evaluate=evaluate,
        **ks,
    )


def cookie_of(user: User) -> str:
    return jwt_encode({'username': user.username})


class FakeRunner(Runner):
    '''
    answers every run with `payload`, or raises `error` when set
    '''

    def __init__(self, payload: Optional[Dict[str, Any]] = None):
        self.payload = payload or CORRECT_PAYLOAD
        self.error: Optional[BaseException] = None
        self.calls: List[int] = []

    def run(self, submission) -> Dict[str, Any]:
        self.calls.append(submission.pk)
        if self.error is not None:
            raise self.error
        return self.payload
