'''
Queueing of judge jobs.

A job is a plain callable; where it runs is up to the `TaskQueue`:

    InlineQueue     runs the job right away in the caller
    DeferredQueue   keeps the jobs until `run_pending` is called
    JudgeWorkerPool worker threads draining a priority queue
'''
import itertools
import logging
import queue
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .runner import Runner, SandboxRunner
from .state import SubmissionStateMachine, Verdict

__all__ = [
    'Lane',
    'TaskQueue',
    'InlineQueue',
    'DeferredQueue',
    'JudgeWorkerPool',
    'EvaluationDispatcher',
    'get_dispatcher',
    'set_dispatcher',
]

logger = logging.getLogger(__name__)

Job = Callable[[], object]


class Lane(str, Enum):
    HIGH = 'high'
    NORMAL = 'normal'
    LOW = 'low'

    @property
    def queue_name(self) -> str:
        return {
            Lane.HIGH: 'high_priority_submissions',
            Lane.NORMAL: 'submissions',
            Lane.LOW: 'low_priority_submissions',
        }[self]

    @property
    def rank(self) -> int:
        return [Lane.HIGH, Lane.NORMAL, Lane.LOW].index(self)


class TaskQueue(ABC):

    @abstractmethod
    def enqueue(self, job: Job, lane: Lane = Lane.NORMAL):
        ...


class InlineQueue(TaskQueue):

    def enqueue(self, job: Job, lane: Lane = Lane.NORMAL):
        job()


class DeferredQueue(TaskQueue):

    def __init__(self):
        self.jobs: Dict[Lane, List[Job]] = {lane: [] for lane in Lane}

    def enqueue(self, job: Job, lane: Lane = Lane.NORMAL):
        self.jobs[Lane(lane)].append(job)

    def pending(self, lane: Optional[Lane] = None) -> List[Job]:
        if lane is not None:
            return [*self.jobs[Lane(lane)]]
        return [job for lane in Lane for job in self.jobs[lane]]

    def run_pending(self) -> int:
        '''
        run queued jobs lane by lane, including jobs they enqueue

        Returns:
            how many jobs ran
        '''
        count = 0
        while True:
            lane = next((lane for lane in Lane if self.jobs[lane]), None)
            if lane is None:
                return count
            self.jobs[lane].pop(0)()
            count += 1


class JudgeWorkerPool(TaskQueue):
    '''
    Worker threads sharing one priority queue; a high lane job is always
    taken before normal and low lane ones.
    '''

    def __init__(self, workers: int = 2):
        self.queue = queue.PriorityQueue()
        self._seq = itertools.count()
        self.threads = [
            threading.Thread(
                target=self._work,
                name=f'judge-worker-{i}',
                daemon=True,
            ) for i in range(workers)
        ]
        self.do_run = False

    def start(self):
        self.do_run = True
        for t in self.threads:
            t.start()
        logger.info(f'judge worker pool started [workers={len(self.threads)}]')
        return self

    def stop(self, timeout: Optional[float] = None):
        self.do_run = False
        for _ in self.threads:
            # sentinel sorts after every real lane
            self.queue.put((len(Lane), next(self._seq), None))
        for t in self.threads:
            t.join(timeout)

    def enqueue(self, job: Job, lane: Lane = Lane.NORMAL):
        self.queue.put((Lane(lane).rank, next(self._seq), job))

    def _work(self):
        while self.do_run:
            _, _, job = self.queue.get()
            try:
                if job is None:
                    return
                job()
            except Exception as e:
                logger.exception(f'judge job failed: {e}')
            finally:
                self.queue.task_done()


class EvaluationDispatcher:

    def __init__(
        self,
        task_queue: Optional[TaskQueue] = None,
        runner: Optional[Runner] = None,
        machine: Optional[SubmissionStateMachine] = None,
    ):
        self.queue = task_queue or InlineQueue()
        self.runner = runner or SandboxRunner()
        self.machine = machine or SubmissionStateMachine()

    def dispatch(self, submission, priority: Lane = Lane.NORMAL) -> bool:
        '''
        queue a submission for judging unless it is already waiting

        Returns:
            whether a job was enqueued
        '''
        if not self.machine.mark_queued(submission):
            submission.logger.debug(f'{submission} is already pending')
            return False
        self.enqueue(submission, priority)
        return True

    def enqueue(self, submission, priority: Lane = Lane.NORMAL):
        '''
        hand the job of a submission already marked queued to the task queue
        '''
        priority = Lane(priority)
        pk = submission.pk
        self.queue.enqueue(lambda: self.evaluate(pk), priority)
        submission.logger.info(
            f'{submission} queued [lane={priority.queue_name}]')

    def evaluate(self, submission_id: int) -> bool:
        '''
        run one queued submission through the runner and store its verdict

        A verdict that can not be stored ends the submission in internal
        error instead of leaving it running.
        '''
        from .submission import Submission
        submission = Submission(submission_id)
        if not submission:
            logger.warning(f'submission {submission_id} vanished from queue')
            return False
        if not self.machine.mark_running(submission):
            submission.logger.warning(f'{submission} is not queued anymore')
            return False
        submission.logger.info(f'{submission} running')
        error = None
        try:
            verdict = Verdict.from_runner(self.runner.run(submission))
        except Exception as e:
            submission.logger.error(f'runner failed on {submission}: {e!r}')
            error = e
            verdict = Verdict.internal_error(e)
        try:
            return self.machine.apply_verdict(submission, verdict, error=error)
        except Exception as e:
            submission.logger.error(
                f'can not store verdict of {submission}: {e!r}')
            return self.machine.fail(submission, e)

    def bulk_rejudge(
        self,
        submissions: Iterable,
        priority: Lane = Lane.LOW,
    ) -> int:
        count = sum(self.dispatch(s, priority) for s in submissions)
        logger.info(f'rejudge {count} submissions [lane={Lane(priority).value}]')
        return count

    def rejudge_delayed(
        self,
        submission_ids: Iterable[int],
        priority: Lane = Lane.LOW,
    ):
        '''
        enqueue the rejudge loop itself so a large batch does not block
        the caller
        '''
        from .submission import Submission
        ids = [*submission_ids]
        self.queue.enqueue(
            lambda: self.bulk_rejudge(map(Submission, ids), priority),
            Lane.LOW,
        )
        return len(ids)


_dispatcher: Optional[EvaluationDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> EvaluationDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = EvaluationDispatcher()
        return _dispatcher


def set_dispatcher(dispatcher: Optional[EvaluationDispatcher]):
    global _dispatcher
    with _dispatcher_lock:
        _dispatcher = dispatcher
