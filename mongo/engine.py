from mongoengine import *
import mongoengine
from enum import IntEnum
from typing import List

from . import config

__all__ = [*mongoengine.__all__, 'Role', 'SubmissionStatus', 'connect_db']

MONGO_HOST = config.MONGO_HOST


def connect_db():
    host = MONGO_HOST
    # FIXME: we should use config to check whether is in testing
    if host.startswith('mongomock'):
        import mongomock
        return connect(
            config.MONGO_DB,
            host=host.replace('mongomock', 'mongodb'),
            mongo_client_class=mongomock.MongoClient,
        )
    return connect(config.MONGO_DB, host=host)


connect_db()


class Role(IntEnum):
    ADMIN = 0
    STAFF = 1
    STUDENT = 2


class SubmissionStatus(IntEnum):
    UNKNOWN = 0
    CORRECT = 1
    WRONG = 2
    TIME_LIMIT_EXCEEDED = 3
    RUNNING = 4
    QUEUED = 5
    RUNTIME_ERROR = 6
    COMPILATION_ERROR = 7
    MEMORY_LIMIT_EXCEEDED = 8
    INTERNAL_ERROR = 9
    OUTPUT_LIMIT_EXCEEDED = 10

    @property
    def label(self) -> str:
        return self.name.lower().replace('_', ' ')

    @classmethod
    def from_label(cls, label: str) -> 'SubmissionStatus':
        try:
            return cls[label.strip().upper().replace(' ', '_')]
        except (KeyError, AttributeError):
            raise ValueError(f'unknown status {label!r}')

    @classmethod
    def pending(cls) -> List['SubmissionStatus']:
        return [cls.QUEUED, cls.RUNNING]

    @classmethod
    def judged(cls) -> List['SubmissionStatus']:
        return [s for s in cls if s not in cls.pending()]

    @property
    def is_pending(self) -> bool:
        return self in self.pending()

    @property
    def is_terminal(self) -> bool:
        return self not in (*self.pending(), SubmissionStatus.UNKNOWN)


class IntEnumField(IntField):

    def __init__(self, enum: IntEnum, **ks):
        super().__init__(**ks)
        self.enum = enum

    def validate(self, value):
        choices = (*self.enum.__members__.values(), )
        if value not in choices:
            self.error(f'Value must be one of {choices}')


class User(Document):
    id = SequenceField(primary_key=True)
    username = StringField(
        min_length=1,
        max_length=16,
        required=True,
        unique=True,
    )
    role = IntEnumField(default=Role.STUDENT, enum=Role)


class Course(Document):
    id = SequenceField(primary_key=True)
    name = StringField(min_length=1, max_length=64, required=True)
    admins = ListField(ReferenceField('User'), default=list)
    students = ListField(ReferenceField('User'), default=list)


class Exercise(Document):
    id = SequenceField(primary_key=True)
    name = StringField(min_length=1, max_length=128, required=True)
    # name of the judge the sandbox runs the submission with
    judge = StringField(max_length=64, default='pythia')
    config = DictField(default=dict)


class Series(Document):
    meta = {'indexes': ['course']}
    id = SequenceField(primary_key=True)
    name = StringField(max_length=64, required=True)
    course = ReferenceField('Course', required=True)
    exercises = ListField(ReferenceField('Exercise'), default=list)
    deadline = DateTimeField(null=True)


class Submission(Document):
    meta = {
        'indexes': [
            'course',
            ('exercise', 'user'),
            ('user', '-id'),
            {
                'fields': ['fs_key'],
                'unique': True,
                'sparse': True,
            },
        ]
    }
    id = SequenceField(primary_key=True)
    exercise = ReferenceField('Exercise', required=True)
    user = ReferenceField('User', required=True)
    course = ReferenceField('Course', null=True)
    status = IntEnumField(default=SubmissionStatus.UNKNOWN,
                          enum=SubmissionStatus)
    accepted = BooleanField(null=True)
    summary = StringField(max_length=255, null=True)
    # left out of the document until assigned, the index is sparse
    fs_key = StringField(db_field='fsKey', min_length=24, max_length=24)
    created_at = DateTimeField(db_field='createdAt', required=True)
    updated_at = DateTimeField(db_field='updatedAt', required=True)


class ErrorReport(Document):
    meta = {'collection': 'error_reports'}
    kind = StringField(max_length=128, required=True)
    message = StringField(default='')
    traceback = StringField(null=True)
    data = DictField(default=dict)
    host = StringField(max_length=256)
    timestamp = DateTimeField(required=True)
