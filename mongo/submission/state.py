import json
import socket
import traceback
from typing import Any, Dict, NamedTuple, Optional, Set

from .. import config
from .. import engine
from ..engine import SubmissionStatus
from ..exercise import Exercise
from ..utils import ErrorReporter, utcnow
from .exceptions import InvalidTransition
from .invalidation import CacheInvalidationSink
from .storage import ResultStore
from .verdict import VerdictNode

__all__ = [
    'Verdict',
    'SubmissionStateMachine',
    'normalize_status',
    'allowed_targets',
    'check_transition',
]

SUMMARY_LENGTH = 255

# labels some judges send instead of ours
_STATUS_ALIASES = {
    'correct answer': SubmissionStatus.CORRECT,
    'wrong answer': SubmissionStatus.WRONG,
}


def normalize_status(value) -> SubmissionStatus:
    if isinstance(value, str):
        label = value.strip().lower()
        if label in _STATUS_ALIASES:
            return _STATUS_ALIASES[label]
        try:
            return SubmissionStatus.from_label(label)
        except ValueError:
            return SubmissionStatus.UNKNOWN
    try:
        return SubmissionStatus(value)
    except ValueError:
        return SubmissionStatus.UNKNOWN


def allowed_targets(old: SubmissionStatus) -> Set[SubmissionStatus]:
    judged = set(SubmissionStatus.judged())
    if old == SubmissionStatus.QUEUED:
        return {SubmissionStatus.RUNNING, *judged}
    if old == SubmissionStatus.RUNNING:
        return judged
    if old == SubmissionStatus.UNKNOWN:
        return {SubmissionStatus.QUEUED, *(judged - {old})}
    # judged, only a rejudge moves it again
    return {SubmissionStatus.QUEUED}


def check_transition(old, new):
    old, new = SubmissionStatus(old), SubmissionStatus(new)
    if new not in allowed_targets(old):
        raise InvalidTransition(old.label, new.label)


class Verdict(NamedTuple):
    status: SubmissionStatus
    accepted: bool
    summary: Optional[str]
    result: str

    @classmethod
    def from_runner(cls, payload: Dict[str, Any]) -> 'Verdict':
        '''
        parse what a runner returned

        Raises:
            ValueError: the payload is not a result tree
        '''
        if not isinstance(payload, dict) or 'status' not in payload:
            raise ValueError(f'malformed runner output: {payload!r}')
        VerdictNode.from_dict(payload)
        status = normalize_status(payload['status'])
        if status.is_pending:
            raise ValueError(f'runner returned a pending status {status.label}')
        summary = payload.get('description')
        return cls(
            status=status,
            accepted=bool(payload.get('accepted', False)),
            summary=None if summary is None else str(summary),
            result=json.dumps(payload),
        )

    @classmethod
    def internal_error(cls, error: Optional[BaseException] = None):
        description = 'internal error'
        messages = []
        if error is not None:
            messages.append({
                'format':
                'code',
                'description':
                ''.join(
                    traceback.format_exception(type(error), error,
                                               error.__traceback__)),
                'permission':
                'staff',
            })
        payload = {
            'accepted': False,
            'status': SubmissionStatus.INTERNAL_ERROR.label,
            'description': description,
            'messages': messages,
        }
        return cls(
            status=SubmissionStatus.INTERNAL_ERROR,
            accepted=False,
            summary=description,
            result=json.dumps(payload),
        )


class SubmissionStateMachine:
    '''
    Owns `status`, `accepted` and `summary` of submissions.

    Every transition is one conditional update, so two workers racing on
    the same submission can not both win. Each persisted change drops the
    cached aggregates depending on the submission.
    '''

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        sink: Optional[CacheInvalidationSink] = None,
        reporter: Optional[ErrorReporter] = None,
    ):
        self.reporter = reporter or ErrorReporter()
        self.store = store or ResultStore(reporter=self.reporter)
        self.sink = sink or CacheInvalidationSink()

    def _transition(self, submission, expected: Dict[str, Any], **update):
        res = engine.Submission.objects(
            id=submission.pk,
            **expected,
        ).update_one(
            full_result=True,
            set__updated_at=utcnow(),
            **update,
        )
        return res.matched_count == 1

    def mark_queued(self, submission) -> bool:
        '''
        move a submission which is not waiting for a judge into the queue

        Returns:
            whether this call queued it
        '''
        queued = self._transition(
            submission,
            {'status__nin': SubmissionStatus.pending()},
            set__status=SubmissionStatus.QUEUED,
            set__accepted=None,
            set__summary=None,
        )
        if not queued:
            return False
        try:
            self.store.clear_result(submission.storage_identity)
        except OSError as e:
            # unread while pending, the verdict overwrites it
            submission.logger.error(f'can not clear result of {submission}: {e!r}')
            self.reporter.notify(e, data={'submission': submission.pk})
        submission.reload()
        self.sink.invalidate(submission.snapshot)
        return True

    def mark_running(self, submission) -> bool:
        running = self._transition(
            submission,
            {'status': SubmissionStatus.QUEUED},
            set__status=SubmissionStatus.RUNNING,
        )
        if running:
            submission.reload()
        return running

    def apply_verdict(
        self,
        submission,
        verdict: Verdict,
        error: Optional[BaseException] = None,
    ) -> bool:
        '''
        store the result and set status, accepted and summary together

        Raises:
            InvalidTransition: the submission is not waiting for a verdict
        '''
        submission.reload()
        check_transition(submission.status, verdict.status)
        self.store.write_result(submission.storage_identity, verdict.result)
        summary = verdict.summary
        if summary is not None:
            summary = summary[:SUMMARY_LENGTH]
        applied = self._transition(
            submission,
            {'status__in': SubmissionStatus.pending()},
            set__status=verdict.status,
            set__accepted=verdict.accepted,
            set__summary=summary,
        )
        if not applied:
            submission.logger.warning(
                f'{submission} left the queue before its verdict arrived')
            return False
        self._judged(submission, verdict.status, error)
        return True

    def fail(self, submission, error: BaseException) -> bool:
        '''
        end a pending submission in internal error after its verdict could
        not be stored

        The internal error result is written when possible; otherwise only
        status, accepted and summary are set, so the submission never stays
        pending.
        '''
        try:
            return self.apply_verdict(
                submission,
                Verdict.internal_error(error),
                error=error,
            )
        except Exception as e:
            submission.logger.error(
                f'can not store internal error of {submission}: {e!r}')
        failed = self._transition(
            submission,
            {'status__in': SubmissionStatus.pending()},
            set__status=SubmissionStatus.INTERNAL_ERROR,
            set__accepted=False,
            set__summary=Verdict.internal_error().summary,
        )
        if failed:
            self._judged(submission, SubmissionStatus.INTERNAL_ERROR, error)
        return failed

    def _judged(self, submission, status: SubmissionStatus, error=None):
        submission.reload()
        submission.logger.info(f'{submission} judged [status={status.label}]')
        self.sink.invalidate(submission.snapshot)
        if status == SubmissionStatus.INTERNAL_ERROR:
            self.report_internal_error(submission, error)

    def report_internal_error(
        self,
        submission,
        error: Optional[BaseException] = None,
    ):
        exercise = Exercise(submission.exercise_id)
        self.reporter.notify(
            error or f'{submission} ended in internal error',
            data={
                'host': socket.gethostname(),
                'judge': exercise.judge,
                'submission': {
                    'id': submission.pk,
                    'user': submission.user_id,
                    'exercise': submission.exercise_id,
                    'course': submission.course_id,
                    'fsKey': submission.fs_key,
                },
                'url': f'{config.DEFAULT_HOST}/submissions/{submission.pk}',
            },
        )
