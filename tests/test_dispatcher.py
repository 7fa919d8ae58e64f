import json

import pytest

from mongo import *
from mongo import engine
from mongo.submission import (
    DeferredQueue,
    EvaluationDispatcher,
    InlineQueue,
    JudgeWorkerPool,
    Lane,
    ResultStore,
)
from tests import utils


def error_reports():
    return list(engine.ErrorReport.objects)


def test_dispatch_queues_once(dispatcher, task_queue):
    submission = utils.create_submission()
    assert dispatcher.dispatch(submission)
    assert not dispatcher.dispatch(submission)
    assert len(task_queue.pending()) == 1
    assert submission.reload().status == SubmissionStatus.QUEUED


def test_running_submission_is_not_requeued(dispatcher, task_queue):
    submission = utils.create_submission()
    dispatcher.dispatch(submission)
    dispatcher.machine.mark_running(submission)
    assert not dispatcher.dispatch(submission)
    assert len(task_queue.pending()) == 1


def test_lanes(dispatcher, task_queue):
    high, normal, low = (utils.create_submission() for _ in range(3))
    dispatcher.dispatch(high, Lane.HIGH)
    dispatcher.dispatch(normal)
    dispatcher.dispatch(low, Lane.LOW)
    assert [len(task_queue.pending(lane)) for lane in Lane] == [1, 1, 1]
    assert Lane.HIGH.queue_name == 'high_priority_submissions'
    assert Lane.NORMAL.queue_name == 'submissions'
    assert Lane.LOW.queue_name == 'low_priority_submissions'


def test_dispatch_clears_previous_verdict(dispatcher, task_queue):
    submission = utils.create_submission(evaluate=True)
    task_queue.run_pending()
    assert submission.reload().summary == 'OK'
    assert dispatcher.dispatch(submission)
    submission.reload()
    assert submission.summary is None
    assert submission.accepted is None
    assert submission.result is None
    assert not submission.on_filesystem()


def test_evaluate_applies_normalized_verdict(dispatcher, task_queue,
                                             fake_runner):
    fake_runner.payload = {
        'status': 'wrong answer',
        'accepted': False,
        'description': 'x' * 300,
    }
    submission = utils.create_submission(evaluate=True)
    assert task_queue.run_pending() == 1
    submission.reload()
    assert fake_runner.calls == [submission.pk]
    assert submission.status == SubmissionStatus.WRONG
    assert submission.accepted is False
    assert submission.summary == 'x' * 255
    assert json.loads(submission.result)['status'] == 'wrong answer'


def test_unknown_runner_status_maps_to_unknown(task_queue, fake_runner):
    fake_runner.payload = {'status': 'flabbergasted', 'accepted': False}
    submission = utils.create_submission(evaluate=True)
    task_queue.run_pending()
    assert submission.reload().status == SubmissionStatus.UNKNOWN


def test_runner_crash_ends_in_internal_error(task_queue, fake_runner):
    fake_runner.error = RuntimeError('sandbox exploded')
    exercise = utils.create_exercise(judge='turtle')
    submission = utils.create_submission(exercise=exercise, evaluate=True)
    task_queue.run_pending()
    submission.reload()
    assert submission.status == SubmissionStatus.INTERNAL_ERROR
    assert submission.accepted is False
    reports = error_reports()
    assert len(reports) == 1
    assert reports[0]['kind'] == 'RuntimeError'
    assert reports[0]['data']['judge'] == 'turtle'
    assert reports[0]['data']['submission']['id'] == submission.pk
    assert reports[0]['data']['url'].endswith(f'/submissions/{submission.pk}')
    # the traceback is only for staff
    result = json.loads(submission.result)
    assert result['messages'][0]['permission'] == 'staff'


def test_malformed_runner_output_ends_in_internal_error(
        task_queue, fake_runner):
    fake_runner.payload = ['not', 'a', 'tree']
    submission = utils.create_submission(evaluate=True)
    task_queue.run_pending()
    assert submission.reload().status == SubmissionStatus.INTERNAL_ERROR
    assert len(error_reports()) == 1


def test_unwritable_result_ends_in_internal_error(task_queue, monkeypatch):

    def disk_full(self, identity, result):
        raise OSError('disk full')

    monkeypatch.setattr(ResultStore, 'write_result', disk_full)
    submission = utils.create_submission(evaluate=True)
    task_queue.run_pending()
    submission.reload()
    assert submission.status == SubmissionStatus.INTERNAL_ERROR
    assert submission.accepted is False
    assert submission.summary == 'internal error'
    assert submission.user.correct_exercises() == 0
    reports = error_reports()
    assert len(reports) == 1
    assert reports[0]['kind'] == 'OSError'


def test_verdict_failing_once_stores_internal_error_result(
        task_queue, monkeypatch):
    write_result = ResultStore.write_result
    calls = []

    def fail_first(self, identity, result):
        calls.append(result)
        if len(calls) == 1:
            raise OSError('disk full')
        return write_result(self, identity, result)

    monkeypatch.setattr(ResultStore, 'write_result', fail_first)
    submission = utils.create_submission(evaluate=True)
    task_queue.run_pending()
    assert len(calls) == 2
    assert submission.reload().status == SubmissionStatus.INTERNAL_ERROR
    result = json.loads(submission.result)
    assert result['status'] == 'internal error'
    assert 'disk full' in result['messages'][0]['description']


def test_evaluate_skips_submission_not_queued(dispatcher, fake_runner):
    submission = utils.create_submission()
    assert not dispatcher.evaluate(submission.pk)
    assert fake_runner.calls == []


def test_bulk_rejudge_uses_low_lane(dispatcher, task_queue):
    submissions = [utils.create_submission(evaluate=True) for _ in range(3)]
    task_queue.run_pending()
    assert dispatcher.bulk_rejudge(submissions) == 3
    assert len(task_queue.pending(Lane.LOW)) == 3
    task_queue.run_pending()
    assert all(s.reload().status == SubmissionStatus.CORRECT
               for s in submissions)


def test_rejudge_delayed_defers_the_loop(dispatcher, task_queue):
    submissions = [utils.create_submission(evaluate=True) for _ in range(2)]
    task_queue.run_pending()
    Submission.rejudge_delayed(submissions)
    # only the loop itself is queued
    assert len(task_queue.pending(Lane.LOW)) == 1
    assert all(s.reload().status == SubmissionStatus.CORRECT
               for s in submissions)
    # the loop, then one job per submission
    assert task_queue.run_pending() == 3


def test_inline_queue_runs_immediately(fake_runner):
    dispatcher = EvaluationDispatcher(InlineQueue(), fake_runner)
    submission = utils.create_submission()
    dispatcher.dispatch(submission)
    assert submission.reload().status == SubmissionStatus.CORRECT


def test_worker_pool_prefers_high_lane():
    pool = JudgeWorkerPool(workers=1)
    ran = []
    pool.enqueue(lambda: ran.append('low'), Lane.LOW)
    pool.enqueue(lambda: ran.append('normal'), Lane.NORMAL)
    pool.enqueue(lambda: ran.append('high'), Lane.HIGH)
    pool.start()
    pool.queue.join()
    pool.stop(timeout=5)
    assert ran == ['high', 'normal', 'low']


def test_worker_pool_survives_failing_job():
    pool = JudgeWorkerPool(workers=1)
    ran = []

    def boom():
        raise RuntimeError('boom')

    pool.enqueue(boom)
    pool.enqueue(lambda: ran.append('after'))
    pool.start()
    pool.queue.join()
    pool.stop(timeout=5)
    assert ran == ['after']
