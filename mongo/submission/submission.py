from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .. import config
from .. import engine
from ..base import MongoBase
from ..course import Course
from ..engine import SubmissionStatus
from ..exercise import Exercise
from ..series import Series
from ..user import User
from ..utils import drop_none, utcnow
from .dispatcher import Lane, get_dispatcher
from .exceptions import RateLimitExceeded, SubmissionValidationError
from .invalidation import CacheInvalidationSink, SubmissionSnapshot
from .rate_limit import RateLimiter
from .state import SUMMARY_LENGTH
from .storage import ResultStore, StorageIdentity, generate_fs_key
from .verdict import ResultProjector, role_for

__all__ = ['Submission']

FS_KEY_ATTEMPTS = 5


class Submission(MongoBase, engine=engine.Submission):
    IDENTITY_FIELDS = ('course', 'user', 'exercise')

    def __str__(self):
        return f'submission [{self.pk}]'

    @property
    def status(self) -> SubmissionStatus:
        return SubmissionStatus(self.obj.status)

    @property
    def exercise_id(self) -> int:
        return self.ref_id('exercise')

    @property
    def user_id(self) -> int:
        return self.ref_id('user')

    @property
    def course_id(self) -> Optional[int]:
        return self.ref_id('course')

    @property
    def exercise(self) -> Exercise:
        return Exercise(self.exercise_id)

    @property
    def user(self) -> User:
        return User(self.user_id)

    @property
    def course(self) -> Optional[Course]:
        if self.course_id is None:
            return None
        return Course(self.course_id)

    @property
    def store(self) -> ResultStore:
        return ResultStore()

    @property
    def sink(self) -> CacheInvalidationSink:
        return CacheInvalidationSink()

    @property
    def storage_identity(self) -> StorageIdentity:
        if self.fs_key is None:
            self.ensure_fs_key()
        return StorageIdentity(
            course_id=self.course_id,
            user_id=self.user_id,
            exercise_id=self.exercise_id,
            fs_key=self.fs_key,
        )

    @property
    def snapshot(self) -> SubmissionSnapshot:
        return SubmissionSnapshot(
            submission_id=self.pk,
            user_id=self.user_id,
            exercise_id=self.exercise_id,
            course_id=self.course_id,
        )

    @property
    def url(self) -> str:
        return f'{config.DEFAULT_HOST}/submissions/{self.pk}'

    @staticmethod
    def _check_status(
        errors: Dict[str, List[str]],
        evaluate: bool,
        status: SubmissionStatus,
        accepted: Optional[bool],
        summary: Optional[str],
        result: Optional[str],
    ):
        if evaluate:
            if status != SubmissionStatus.UNKNOWN:
                errors['status'] = ['must be unknown when evaluating']
            given = {
                'accepted': accepted,
                'summary': summary,
                'result': result,
            }
            for key, value in given.items():
                if value is not None:
                    errors[key] = ['must be empty when evaluating']
            return
        if status.is_pending:
            errors['status'] = [f'{status.label} is only set by the judge']
        elif status != SubmissionStatus.UNKNOWN:
            if accepted is None:
                errors['accepted'] = [f"can't be blank for {status.label}"]
            if summary is None:
                errors['summary'] = [f"can't be blank for {status.label}"]

    @classmethod
    def add(
        cls,
        *,
        exercise: Exercise,
        user: User,
        code: str,
        evaluate: bool,
        course: Optional[Course] = None,
        result: Optional[str] = None,
        status: SubmissionStatus = SubmissionStatus.UNKNOWN,
        accepted: Optional[bool] = None,
        summary: Optional[str] = None,
        skip_rate_limit_check: bool = False,
        now: Optional[datetime] = None,
        priority: Lane = Lane.NORMAL,
    ) -> 'Submission':
        '''
        Validate, store the code and insert a new submission.

        `evaluate` has no default: every caller decides whether the new
        submission goes to the judge. Such a submission is inserted as
        queued, so it is pending from the moment anyone can read it. A
        judged status given at creation needs `accepted` and `summary`
        too. `skip_rate_limit_check` is only for server side callers
        such as imports or rejudges.

        Raises:
            SubmissionValidationError: nothing was persisted
        '''
        now = now or utcnow()
        status = SubmissionStatus(status)
        errors = {}
        if not exercise:
            errors['exercise'] = ['must exist']
        if not user:
            errors['user'] = ['must exist']
        if course is not None and not course:
            errors['course'] = ['must exist']
        if code is None:
            errors['code'] = ["can't be blank"]
        elif len(code.encode('utf-8')) >= config.MAX_CODE_BYTES:
            errors['code'] = [
                f'must be shorter than {config.MAX_CODE_BYTES} bytes'
            ]
        cls._check_status(errors, evaluate, status, accepted, summary, result)
        if errors:
            raise SubmissionValidationError(errors=errors)
        if not skip_rate_limit_check:
            allowed, wait_for = RateLimiter().check(user, now)
            if not allowed:
                raise RateLimitExceeded(wait_for)
        if evaluate:
            status = SubmissionStatus.QUEUED
        if summary is not None:
            summary = summary[:SUMMARY_LENGTH]
        course_id = None if course is None else course.pk
        store = ResultStore()
        for _ in range(FS_KEY_ATTEMPTS):
            fs_key = generate_fs_key()
            if engine.Submission.objects(fs_key=fs_key).only('id').first():
                continue
            identity = StorageIdentity(course_id, user.pk, exercise.pk, fs_key)
            doc = engine.Submission(
                exercise=exercise.obj,
                user=user.obj,
                course=None if course is None else course.obj,
                status=status,
                accepted=accepted,
                summary=summary,
                fs_key=fs_key,
                created_at=now,
                updated_at=now,
            )
            try:
                store.write_code(identity, code)
                if result is not None:
                    store.write_result(identity, result)
                doc.save(force_insert=True)
            except engine.NotUniqueError:
                store.remove(identity)
                continue
            except Exception:
                store.remove(identity)
                raise
            break
        else:
            raise engine.NotUniqueError('can not allocate a unique fs key')
        submission = cls(doc)
        submission.logger.info(f'{submission} created by {user}')
        submission.sink.invalidate(submission.snapshot)
        if evaluate:
            get_dispatcher().enqueue(submission, priority)
        return submission

    def ensure_fs_key(self) -> str:
        '''
        assign the storage key of a row created without one, exactly once
        '''
        for _ in range(FS_KEY_ATTEMPTS):
            if self.obj.fs_key is not None:
                return self.obj.fs_key
            try:
                engine.Submission.objects(
                    id=self.pk,
                    fs_key=None,
                ).update_one(set__fs_key=generate_fs_key())
            except engine.NotUniqueError:
                continue
            self.reload()
        raise engine.NotUniqueError(f'can not assign a fs key to {self}')

    def _context(self) -> Dict[str, Any]:
        return {
            'submission_id': self.pk,
            'status': self.status.label,
        }

    @property
    def code(self) -> str:
        return self.store.read_code(self.storage_identity, self._context())

    @property
    def result(self) -> Optional[str]:
        if self.status.is_pending:
            return None
        return self.store.read_result(self.storage_identity, self._context())

    def safe_result(self, viewer: User) -> Optional[Dict[str, Any]]:
        '''
        the result tree as `viewer` is allowed to see it
        '''
        return ResultProjector().project(
            self.result,
            role_for(viewer, self.course),
        )

    def on_filesystem(self) -> bool:
        return self.store.on_filesystem(self.storage_identity)

    def reassign(self, **ks) -> 'Submission':
        '''
        change course, user or exercise and move the stored files along

        Args:
            course / user / exercise: wrapper, id, or None for `course`
        '''
        unknown = set(ks) - set(self.IDENTITY_FIELDS)
        if unknown:
            raise AttributeError(f'can not reassign {sorted(unknown)}')
        if not self:
            raise engine.DoesNotExist(f'{self}')
        update = {k: getattr(v, 'pk', v) for k, v in ks.items()}
        old_identity, old_snapshot = self.storage_identity, self.snapshot
        new_identity = old_identity._replace(
            course_id=update.get('course', old_identity.course_id),
            user_id=update.get('user', old_identity.user_id),
            exercise_id=update.get('exercise', old_identity.exercise_id),
        )
        store = self.store
        with store.lock(old_identity):
            moved = store.move(old_identity, new_identity)
            try:
                self.obj.update(
                    **{f'set__{k}': v
                       for k, v in update.items()},
                    set__updated_at=utcnow(),
                )
            except Exception:
                if moved:
                    store.move(new_identity, old_identity)
                raise
        self.reload()
        self.logger.info(f'{self} reassigned {update}')
        self.sink.invalidate(old_snapshot)
        self.sink.invalidate(self.snapshot)
        return self

    def delete(self):
        identity, snapshot = self.storage_identity, self.snapshot
        super().delete()
        self.store.remove(identity)
        self.logger.info(f'{self} deleted')
        self.sink.invalidate(snapshot)

    def rejudge(self, priority: Lane = Lane.HIGH) -> bool:
        return get_dispatcher().dispatch(self, priority)

    @classmethod
    def rejudge_delayed(
        cls,
        submissions: List['Submission'],
        priority: Lane = Lane.LOW,
    ) -> int:
        return get_dispatcher().rejudge_delayed(
            [s.pk for s in submissions],
            priority,
        )

    @classmethod
    def filter(
        cls,
        user: Optional[User] = None,
        exercise: Optional[Exercise] = None,
        course: Optional[Course] = None,
        series: Optional[Series] = None,
        status: Union[SubmissionStatus, str, int, None] = None,
        judged: bool = False,
        offset: int = 0,
        count: int = -1,
    ) -> List['Submission']:
        '''
        newest first

        Raises:
            ValueError: `status` is not a known status
        '''
        q = drop_none({
            'user': getattr(user, 'pk', user),
            'exercise': getattr(exercise, 'pk', exercise),
            'course': getattr(course, 'pk', course),
        })
        if series is not None:
            series = Series(series)
            q['course'] = series.course_id
            exercise_ids = series.exercise_ids
            if 'exercise' in q:
                exercise_ids = [e for e in exercise_ids if e == q['exercise']]
            q.pop('exercise', None)
            q['exercise__in'] = exercise_ids
        if status is not None:
            if isinstance(status, str):
                status = SubmissionStatus.from_label(status)
            q['status'] = SubmissionStatus(status)
        elif judged:
            q['status__nin'] = SubmissionStatus.pending()
        submissions = engine.Submission.objects(**q).order_by('-id')
        submissions = submissions.skip(offset)
        if count != -1:
            submissions = submissions.limit(count)
        return [cls(s) for s in submissions]

    @classmethod
    def most_recent(cls, user: User, exercise: Optional[Exercise] = None):
        found = cls.filter(user=user, exercise=exercise, count=1)
        return found[0] if found else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.pk,
            'exerciseId': self.exercise_id,
            'userId': self.user_id,
            'courseId': self.course_id,
            'status': self.status.label,
            'accepted': self.accepted,
            'summary': self.summary,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
