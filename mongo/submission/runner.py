import logging
from typing import Any, Dict, List, NamedTuple, Optional

import requests as rq

from .. import config
from ..exercise import Exercise
from .exceptions import SandboxUnavailable

__all__ = [
    'SandboxInstance',
    'Runner',
    'SandboxRunner',
]

logger = logging.getLogger(__name__)


class SandboxInstance(NamedTuple):
    name: str
    url: str
    token: str


class Runner:
    '''
    Executes one submission and returns the raw result tree.

    Raising is allowed; the dispatcher turns any failure into an
    internal error.
    '''

    def run(self, submission) -> Dict[str, Any]:
        raise NotImplementedError


class SandboxRunner(Runner):

    def __init__(
        self,
        instances: Optional[List[Dict[str, str]]] = None,
        timeout: Optional[float] = None,
    ):
        self.instances = [
            SandboxInstance(**sb)
            for sb in (instances if instances is not None else
                       config.SANDBOX_INSTANCES)
        ]
        self.timeout = timeout or config.SANDBOX_TIMEOUT

    def target_sandbox(self) -> Optional[SandboxInstance]:
        load = 10**3  # current min load
        tar = None  # target
        for sb in self.instances:
            try:
                resp = rq.get(f'{sb.url}/status', timeout=1)
                if not resp.ok:
                    logger.warning(f'sandbox {sb.name} status exception')
                    logger.warning(
                        f'status code: {resp.status_code}\n '
                        f'body: {resp.text}', )
                    continue
                resp_json = resp.json()
                if resp_json['load'] < load:
                    load = resp_json['load']
                    tar = sb
            except rq.exceptions.RequestException as e:
                logger.warning(f'sandbox {sb.name} is unreachable: {e}')
                continue
        return tar

    def run(self, submission) -> Dict[str, Any]:
        tar = self.target_sandbox()
        if tar is None:
            raise SandboxUnavailable(f'can not target a sandbox for {submission!r}')
        exercise = Exercise(submission.exercise_id)
        post_data = {
            'token': tar.token,
            'submission_id': submission.pk,
            'fs_key': submission.fs_key,
            'judge': exercise.judge,
            'config': exercise.config or {},
            'code': submission.code,
        }
        logger.info(f'send {submission} to {tar.name}')
        resp = rq.post(
            f'{tar.url}/run/{submission.pk}',
            json=post_data,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        logger.info(f'receive {submission} result from {tar.name}')
        return resp.json()
