import json

import pytest

from mongo import *
from mongo.submission import Lane
from tests import utils

RESULT = {
    'accepted': False,
    'status': 'wrong',
    'messages': [{
        'description': 'compiler flags',
        'permission': 'staff',
    }],
    'groups': [{
        'description': 'hidden tab',
        'permission': 'staff',
    }, {
        'description': 'visible tab',
        'groups': [{
            'groups': [{
                'tests': [{
                    'messages': ['diff'],
                }],
            }],
        }],
    }],
}


@pytest.fixture
def student():
    return utils.create_user('student')


@pytest.fixture
def staff():
    return utils.create_user('staff', Role.STAFF)


@pytest.fixture
def admin():
    return utils.create_user('admin', Role.ADMIN)


@pytest.fixture
def exercise():
    return utils.create_exercise()


def test_requires_login(client):
    rv = client.get('/submission')
    assert rv.status_code == 403


def test_invalid_token(client):
    client.set_cookie('piann', 'definitely.not.jwt')
    rv = client.get('/submission')
    assert rv.status_code == 403


def test_create_submission(client_of, student, exercise, task_queue):
    client = client_of(student)
    rv = client.post('/submission', json={
        'exerciseId': exercise.pk,
        'code': 'print(1)',
    })
    assert rv.status_code == 200, rv.get_json()
    submission = Submission(rv.get_json()['data']['submissionId'])
    assert submission.status == SubmissionStatus.QUEUED
    assert len(task_queue.pending(Lane.NORMAL)) == 1


def test_create_too_fast(client_of, student, exercise):
    client = client_of(student)
    body = {'exerciseId': exercise.pk, 'code': 'print(1)'}
    assert client.post('/submission', json=body).status_code == 200
    rv = client.post('/submission', json=body)
    assert rv.status_code == 429
    assert 0 < rv.get_json()['data']['waitFor'] <= 5
    assert len(Submission.filter(user=student)) == 1


def test_create_cannot_bypass_rate_limit(client_of, student, exercise):
    client = client_of(student)
    body = {
        'exerciseId': exercise.pk,
        'code': 'print(1)',
        'skipRateLimitCheck': True,
    }
    client.post('/submission', json=body)
    assert client.post('/submission', json=body).status_code == 429


def test_create_unknown_exercise(client_of, student):
    rv = client_of(student).post('/submission', json={
        'exerciseId': 9999,
        'code': 'print(1)',
    })
    assert rv.status_code == 404


def test_create_code_too_long(client_of, student, exercise):
    from mongo import config
    rv = client_of(student).post('/submission', json={
        'exerciseId': exercise.pk,
        'code': 'a' * config.MAX_CODE_BYTES,
    })
    assert rv.status_code == 400
    assert 'code' in rv.get_json()['data']


def test_create_missing_fields(client_of, student):
    rv = client_of(student).post('/submission', json={'code': 'x'})
    assert rv.status_code == 400
    assert rv.get_json()['message'] == 'post data missing!'
    assert rv.get_json()['data'] == {'exerciseId': None, 'code': True}


def test_create_with_uncastable_exercise_id(client_of, student):
    rv = client_of(student).post('/submission', json={
        'exerciseId': 'abc',
        'code': 'x',
    })
    assert rv.status_code == 400
    assert rv.get_json()['message'] == 'Requested Value With Wrong Type'


def test_list_only_own_for_students(client_of, student, staff, exercise):
    mine = utils.create_submission(user=student, exercise=exercise)
    utils.create_submission(user=staff, exercise=exercise)
    rv = client_of(student).get('/submission')
    ids = [s['id'] for s in rv.get_json()['data']['submissions']]
    assert ids == [mine.pk]
    rv = client_of(staff).get(f'/submission?exerciseId={exercise.pk}')
    assert len(rv.get_json()['data']['submissions']) == 2


def test_list_bad_arguments(client_of, student):
    client = client_of(student)
    assert client.get('/submission?offset=abc').status_code == 400
    assert client.get('/submission?status=great').status_code == 400


def test_detail_is_filtered_by_role(client_of, student, staff, admin,
                                    exercise):
    submission = utils.create_submission(
        user=student,
        exercise=exercise,
        status=SubmissionStatus.WRONG,
        accepted=False,
        summary='wrong',
        result=json.dumps(RESULT),
    )
    url = f'/submission/{submission.pk}'
    data = client_of(student).get(url).get_json()['data']
    assert data['code'] == 'print(1)'
    assert data['status'] == 'wrong'
    assert data['result']['messages'] == []
    assert [g['description'] for g in data['result']['groups']] == [
        'visible tab'
    ]
    test = data['result']['groups'][0]['groups'][0]['groups'][0]['tests'][0]
    assert test['messages'] == ['diff']
    data = client_of(staff).get(url).get_json()['data']
    assert len(data['result']['groups']) == 2
    assert len(data['result']['messages']) == 1
    data = client_of(admin).get(url).get_json()['data']
    assert data['result'] == RESULT


def test_detail_forbidden_for_others(client_of, student, exercise):
    submission = utils.create_submission(user=student, exercise=exercise)
    other = utils.create_user('other')
    rv = client_of(other).get(f'/submission/{submission.pk}')
    assert rv.status_code == 403


def test_detail_visible_to_course_admin(client_of, student, exercise):
    lecturer = utils.create_user('lecturer')
    course = utils.create_course(admins=[lecturer], students=[student])
    submission = utils.create_submission(
        user=student,
        exercise=exercise,
        course=course,
    )
    rv = client_of(lecturer).get(f'/submission/{submission.pk}')
    assert rv.status_code == 200


def test_detail_not_found(client_of, student):
    assert client_of(student).get('/submission/404').status_code == 404


def test_rejudge(client_of, student, staff, exercise, task_queue):
    submission = utils.create_submission(
        user=student,
        exercise=exercise,
        evaluate=True,
    )
    task_queue.run_pending()
    url = f'/submission/{submission.pk}/rejudge'
    assert client_of(student).post(url).status_code == 403
    rv = client_of(staff).post(url)
    assert rv.status_code == 200
    assert rv.get_json()['data']['queued'] is True
    assert len(task_queue.pending(Lane.HIGH)) == 1
    # already queued
    rv = client_of(staff).post(url)
    assert rv.get_json()['data']['queued'] is False


def test_bulk_rejudge(client_of, staff, admin, exercise, task_queue):
    for _ in range(3):
        utils.create_submission(exercise=exercise, evaluate=True)
    task_queue.run_pending()
    body = {'exerciseId': exercise.pk}
    assert client_of(staff).post('/submission/rejudge',
                                 json=body).status_code == 403
    rv = client_of(admin).post('/submission/rejudge', json=body)
    assert rv.get_json()['data']['count'] == 3
    assert len(task_queue.pending(Lane.LOW)) == 1
    assert task_queue.run_pending() == 4


def test_statistics(client_of, student, staff, exercise):
    utils.create_submission(user=student, exercise=exercise)
    utils.create_submission(user=staff, exercise=exercise)
    rv = client_of(staff).get('/submission/statistics/heatmap')
    assert rv.status_code == 200
    assert sum(rv.get_json()['data'].values()) == 2
    # students only see their own activity
    rv = client_of(student).get('/submission/statistics/heatmap')
    assert sum(rv.get_json()['data'].values()) == 1


def test_statistics_unknown_kind(client_of, staff):
    rv = client_of(staff).get('/submission/statistics/scatter')
    assert rv.status_code == 404


def test_statistics_bad_deadline(client_of, staff):
    rv = client_of(staff).get(
        '/submission/statistics/timeseries?deadline=tomorrow')
    assert rv.status_code == 400
