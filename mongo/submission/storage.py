'''
On-disk storage of submission code and judge results.

Layout:

    <base>/<course id or "no_course">/<user id>/<exercise id>/<fs_key>/code
    <base>/<course id or "no_course">/<user id>/<exercise id>/<fs_key>/result.json.gz
'''
import gzip
import logging
import pathlib
import secrets
import shutil
import string
import threading
import zlib
from typing import Any, Dict, NamedTuple, Optional

from .. import config
from ..utils import ErrorReporter

__all__ = [
    'StorageIdentity',
    'ResultStore',
    'generate_fs_key',
]

FS_KEY_LENGTH = 24
FS_KEY_ALPHABET = string.ascii_letters + string.digits

logger = logging.getLogger(__name__)


def generate_fs_key() -> str:
    return ''.join(
        secrets.choice(FS_KEY_ALPHABET) for _ in range(FS_KEY_LENGTH))


class StorageIdentity(NamedTuple):
    course_id: Optional[int]
    user_id: int
    exercise_id: int
    fs_key: str


class ResultStore:
    CODE_FILENAME = 'code'
    RESULT_FILENAME = 'result.json.gz'
    NO_COURSE = 'no_course'

    # one directory maps to one of a fixed set of locks
    LOCK_STRIPES = 64
    _locks = [threading.RLock() for _ in range(LOCK_STRIPES)]

    def __init__(
        self,
        base: Optional[pathlib.Path] = None,
        reporter: Optional[ErrorReporter] = None,
    ):
        self._base = base
        self.reporter = reporter or ErrorReporter()

    @property
    def base_path(self) -> pathlib.Path:
        return pathlib.Path(self._base or config.SUBMISSIONS_STORAGE_PATH)

    def path_for(self, identity: StorageIdentity) -> pathlib.Path:
        course = self.NO_COURSE if identity.course_id is None else str(
            identity.course_id)
        return (self.base_path / course / str(identity.user_id) /
                str(identity.exercise_id) / identity.fs_key)

    def lock(self, identity: StorageIdentity) -> threading.RLock:
        '''
        the lock serializing every access to one submission directory
        '''
        stripe = zlib.crc32(identity.fs_key.encode()) % self.LOCK_STRIPES
        return self._locks[stripe]

    def read_code(
        self,
        identity: StorageIdentity,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        path = self.path_for(identity) / self.CODE_FILENAME
        try:
            with self.lock(identity):
                data = path.read_bytes()
        except FileNotFoundError as e:
            self.reporter.notify(e, context)
            return ''
        return data.decode('utf-8', errors='replace')

    def write_code(self, identity: StorageIdentity, code: str):
        with self.lock(identity):
            path = self.path_for(identity)
            path.mkdir(parents=True, exist_ok=True)
            (path / self.CODE_FILENAME).write_bytes(code.encode('utf-8'))

    def read_result(
        self,
        identity: StorageIdentity,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        path = self.path_for(identity) / self.RESULT_FILENAME
        try:
            with self.lock(identity):
                data = path.read_bytes()
            return gzip.decompress(data).decode('utf-8')
        except (FileNotFoundError, gzip.BadGzipFile, EOFError,
                zlib.error) as e:
            self.reporter.notify(e, context)
            return None

    def write_result(self, identity: StorageIdentity, result: str):
        with self.lock(identity):
            path = self.path_for(identity)
            path.mkdir(parents=True, exist_ok=True)
            (path / self.RESULT_FILENAME).write_bytes(
                gzip.compress(result.encode('utf-8')))

    def clear_result(self, identity: StorageIdentity):
        with self.lock(identity):
            (self.path_for(identity) / self.RESULT_FILENAME).unlink(
                missing_ok=True)

    def on_filesystem(self, identity: StorageIdentity) -> bool:
        path = self.path_for(identity)
        return all((
            (path / self.CODE_FILENAME).exists(),
            (path / self.RESULT_FILENAME).exists(),
        ))

    def move(self, old: StorageIdentity, new: StorageIdentity) -> bool:
        '''
        relocate a submission directory after its identity changed

        Returns:
            whether anything was moved
        '''
        if old.fs_key != new.fs_key:
            raise ValueError('a submission keeps its fs_key when it moves')
        old_path, new_path = self.path_for(old), self.path_for(new)
        if old_path == new_path:
            return False
        with self.lock(new):
            if not old_path.exists():
                logger.warning(f'nothing to move at {old_path}')
                return False
            new_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(old_path), str(new_path))
        logger.info(f'moved submission storage {old_path} -> {new_path}')
        return True

    def remove(self, identity: StorageIdentity):
        with self.lock(identity):
            path = self.path_for(identity)
            if path.exists():
                shutil.rmtree(path)
