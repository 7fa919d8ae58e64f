from datetime import datetime
from typing import Optional

from flask import Blueprint

from mongo import *
from mongo import engine
from mongo.submission import (
    KINDS,
    IncrementalAggregator,
    Lane,
    MatrixOptions,
    RateLimitExceeded,
    SubmissionValidationError,
)
from .utils import *
from .auth import *

__all__ = ['submission_api']
submission_api = Blueprint('submission_api', __name__)


def parse_int(val, name: str) -> Optional[int]:
    if val is None:
        return None
    try:
        return int(val)
    except ValueError:
        raise ValueError(f'can not convert {name} to integer')


def can_view(user: User, submission: Submission) -> bool:
    if user.is_staff or submission.user_id == user.pk:
        return True
    course = submission.course
    return bool(course) and course.is_admin(user)


@submission_api.route('/', methods=['POST'])
@login_required
@Request.json('exercise_id: int', 'course_id: int', 'code: str')
def create_submission(user, exercise_id, course_id, code):
    if exercise_id is None or code is None:
        return HTTPError(
            'post data missing!',
            400,
            data={
                'exerciseId': exercise_id,
                'code': code is not None,
            },
        )
    exercise = Exercise(exercise_id)
    if not exercise:
        return HTTPError('Unexisted exercise id.', 404)
    course = None
    if course_id is not None:
        course = Course(course_id)
        if not course:
            return HTTPError('Unexisted course id.', 404)
    try:
        submission = Submission.add(
            exercise=exercise,
            user=user,
            course=course,
            code=code,
            evaluate=True,
        )
    except RateLimitExceeded as e:
        return HTTPError(
            'Submit too fast!\n'
            f'Please wait for {e.wait_for:.2f} seconds to submit.',
            429,
            data={
                'waitFor': e.wait_for,
            },
        )  # Too many request
    except SubmissionValidationError as e:
        return HTTPError('invalid data!', 400, data=e.errors)
    return HTTPResponse(
        'submission recieved.',
        data={
            'submissionId': submission.id,
        },
    )


@submission_api.route('/', methods=['GET'])
@login_required
@Request.args('offset', 'count', 'exercise_id', 'course_id', 'user_id',
              'status')
def get_submission_list(
    user,
    offset,
    count,
    exercise_id,
    course_id,
    user_id,
    status,
):
    '''
    get the list of submission data
    '''
    try:
        offset = parse_int(offset, 'offset') or 0
        count = parse_int(count, 'count')
        exercise_id = parse_int(exercise_id, 'exerciseId')
        course_id = parse_int(course_id, 'courseId')
        user_id = parse_int(user_id, 'userId')
    except ValueError as e:
        return HTTPError(str(e), 400)
    if count is None:
        count = -1
    if offset < 0 or count < -1:
        return HTTPError('invalid offset or count', 400)
    course = Course(course_id) if course_id is not None else None
    # students only see their own submissions
    if not user.is_staff and not (course and course.is_admin(user)):
        user_id = user.pk
    try:
        submissions = Submission.filter(
            user=user_id,
            exercise=exercise_id,
            course=course_id,
            status=status,
            offset=offset,
            count=count,
        )
    except ValueError as e:
        return HTTPError(str(e), 400)
    return HTTPResponse(
        'here you are',
        data={
            'submissions': [s.to_dict() for s in submissions],
        },
    )


@submission_api.route('/<int:submission_id>', methods=['GET'])
@login_required
@Request.doc('submission_id', 'submission', Submission)
def get_submission(user, submission: Submission):
    if not can_view(user, submission):
        return HTTPError('Permission denied', 403)
    return HTTPResponse(
        data={
            **submission.to_dict(),
            'code': submission.code,
            'result': submission.safe_result(user),
        })


@submission_api.route('/<int:submission_id>/rejudge', methods=['POST'])
@identity_verify(Role.ADMIN, Role.STAFF)
@Request.doc('submission_id', 'submission', Submission)
def rejudge(user, submission: Submission):
    queued = submission.rejudge(Lane.HIGH)
    user.logger.info(f'{user} rejudged {submission} [queued={queued}]')
    return HTTPResponse(
        'rejudge requested',
        data={'queued': queued},
    )


@submission_api.route('/rejudge', methods=['POST'])
@identity_verify(Role.ADMIN)
@Request.json('exercise_id: int', 'course_id: int')
def bulk_rejudge(user, exercise_id, course_id):
    submissions = Submission.filter(
        exercise=exercise_id,
        course=course_id,
        judged=True,
    )
    count = Submission.rejudge_delayed(submissions, Lane.LOW)
    return HTTPResponse(
        'rejudge scheduled',
        data={'count': count},
    )


@submission_api.route('/statistics/<kind>', methods=['GET'])
@login_required
@Request.args('course_id', 'user_id', 'series_id', 'deadline', 'utc_offset')
def get_statistics(user, kind, course_id, user_id, series_id, deadline,
                   utc_offset):
    if kind not in KINDS:
        return HTTPError(f'unknown statistics {kind}', 404)
    try:
        options = MatrixOptions(
            course_id=parse_int(course_id, 'courseId'),
            user_id=parse_int(user_id, 'userId'),
            series_id=parse_int(series_id, 'seriesId'),
            deadline=datetime.fromisoformat(deadline) if deadline else None,
            utc_offset=parse_int(utc_offset, 'utcOffset') or 0,
        )
    except ValueError as e:
        return HTTPError(str(e), 400)
    course = Course(options.course_id) if options.course_id else None
    if not user.is_staff and not (course and course.is_admin(user)):
        options = options._replace(user_id=user.pk)
    try:
        matrix = IncrementalAggregator(kind, options).view()
    except engine.DoesNotExist as e:
        return HTTPError(str(e), 404)
    return HTTPResponse(data=matrix)
