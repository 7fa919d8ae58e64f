import json
import logging
import socket
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import jwt
import redis

from . import config
from . import engine

__all__ = (
    'RedisCache',
    'ErrorReporter',
    'drop_none',
    'utcnow',
    'jwt_encode',
    'jwt_decode',
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    '''
    naive UTC now, the representation Mongo hands back
    '''
    return datetime.now(timezone.utc).replace(tzinfo=None)


def drop_none(d: Dict):
    return {k: v for k, v in d.items() if v is not None}


class RedisCache:
    POOL = None
    FAKE_SERVER = None

    def __new__(cls):
        if cls.POOL is None and config.REDIS_HOST is not None:
            cls.POOL = redis.ConnectionPool(
                host=config.REDIS_HOST,
                port=int(config.REDIS_PORT or 6379),
                db=0,
            )
        return super().__new__(cls)

    def __init__(self):
        self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            if self.POOL is None:
                import fakeredis
                if RedisCache.FAKE_SERVER is None:
                    RedisCache.FAKE_SERVER = fakeredis.FakeServer()
                self._client = fakeredis.FakeStrictRedis(
                    server=RedisCache.FAKE_SERVER)
            else:
                self._client = redis.Redis(connection_pool=self.POOL)
        return self._client

    def get(self, key: str) -> Optional[bytes]:
        return self.client.get(key)

    def set(self, key: str, value, ex: Optional[int] = None):
        return self.client.set(key, value, ex=ex)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self.client.delete(*keys)

    def exists(self, key: str) -> bool:
        return bool(self.client.exists(key))

    def get_json(self, key: str) -> Any:
        if (raw := self.get(key)) is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value, ex: Optional[int] = None):
        return self.set(key, json.dumps(value), ex=ex)

    def fetch(self, key: str, compute, ex: Optional[int] = None):
        '''
        read a JSON value, computing and storing it on a miss
        '''
        if (value := self.get_json(key)) is not None:
            return value
        value = compute()
        self.set_json(key, value, ex=ex)
        return value


class ErrorReporter:
    '''
    Out-of-band error-tracking channel.

    `notify` logs the report and saves it as an `ErrorReport`. It never
    raises: a failure while reporting is only logged.
    '''

    def notify(
        self,
        error: Union[BaseException, str],
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            if isinstance(error, BaseException):
                kind = type(error).__name__
                message = str(error)
                trace = ''.join(
                    traceback.format_exception(type(error), error,
                                               error.__traceback__))
            else:
                kind, message, trace = 'Report', str(error), None
            report = engine.ErrorReport(
                kind=kind,
                message=message,
                traceback=trace,
                data={k: _jsonable(v)
                      for k, v in (data or {}).items()},
                host=socket.gethostname(),
                timestamp=utcnow(),
            )
            logger.error(f'[{kind}] {message} {report.data}')
            report.save()
        except Exception as e:
            logger.warning(f'failed to report error {error!r}: {e}')


def _jsonable(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


def jwt_encode(data: Dict[str, Any], **ks) -> str:
    return jwt.encode({'data': data, **ks}, config.JWT_SECRET, algorithm='HS256')


def jwt_decode(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=['HS256'])
    except jwt.exceptions.PyJWTError:
        return None
