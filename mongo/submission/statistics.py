'''
Resumable aggregate matrices over the submission stream.

A cached matrix is `{"until": <max submission id seen>, "value": {...}}`.
Reading a matrix only aggregates submissions with a larger id and merges
them into the cached value, so every kind keeps its raw value in a form
where merging two disjoint id ranges equals aggregating their union.
`view` turns the raw value into what callers consume.
'''
import itertools
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .. import cache_keys
from .. import config
from .. import engine
from ..course import Course
from ..engine import SubmissionStatus
from ..series import Series
from ..utils import RedisCache

__all__ = [
    'MatrixOptions',
    'MatrixKind',
    'KINDS',
    'IncrementalAggregator',
]

Row = Dict[str, Any]
Value = Dict[str, Any]


class MatrixOptions(NamedTuple):
    course_id: Optional[int] = None
    user_id: Optional[int] = None
    series_id: Optional[int] = None
    deadline: Optional[datetime] = None
    # seconds east of UTC
    utc_offset: int = 0


def _split(key: str) -> List[str]:
    return key.split(',')


class MatrixKind:
    name: str = None
    judged_only = False
    students_only = False
    series_scoped = False
    # (days before, days after) the deadline, to the second
    window_days: Optional[Tuple[int, int]] = None

    def cache_key(self, options: MatrixOptions) -> str:
        return cache_keys.MATRIX.format(
            course_id=cache_keys.scope(options.course_id),
            user_id=cache_keys.scope(options.user_id),
            series_id=cache_keys.scope(options.series_id),
            deadline=options.deadline.isoformat()
            if options.deadline else 'none',
            kind=self.name,
        )

    def extra_filter(self) -> Dict[str, Any]:
        return {}

    def window(
        self,
        options: MatrixOptions,
    ) -> Optional[Tuple[datetime, datetime]]:
        if self.window_days is None or options.deadline is None:
            return None
        before, after = self.window_days
        return (
            options.deadline - timedelta(days=before),
            options.deadline + timedelta(days=after),
        )

    def contributions(
        self,
        row: Row,
        options: MatrixOptions,
    ) -> Iterable[Tuple[str, Any]]:
        raise NotImplementedError

    def combine(self, a, b):
        return a + b

    def merge(self, a: Value, b: Value) -> Value:
        ret = {**a}
        for k, v in b.items():
            ret[k] = self.combine(ret[k], v) if k in ret else v
        return ret

    def view(self, value: Value) -> Any:
        return value


class Punchcard(MatrixKind):
    name = 'punchcard'

    def cache_key(self, options):
        return cache_keys.PUNCHCARD_MATRIX.format(
            course_id=cache_keys.scope(options.course_id),
            user_id=cache_keys.scope(options.user_id),
            timezone=options.utc_offset,
        )

    def contributions(self, row, options):
        local = row['createdAt'] + timedelta(seconds=options.utc_offset)
        # Monday is 0
        yield f'{local.weekday()}, {local.hour}', 1


class Heatmap(MatrixKind):
    name = 'heatmap'

    def cache_key(self, options):
        return cache_keys.HEATMAP_MATRIX.format(
            course_id=cache_keys.scope(options.course_id),
            user_id=cache_keys.scope(options.user_id),
        )

    def contributions(self, row, options):
        yield row['createdAt'].strftime('%Y-%m-%d'), 1


class Violin(MatrixKind):
    name = 'violin'
    judged_only = True
    series_scoped = True
    students_only = True

    def contributions(self, row, options):
        yield f'{row["exercise"]},{row["user"]}', 1

    def view(self, value):
        '''
        submission count of every user, grouped by exercise
        '''
        ret = {}
        for key in sorted(value, key=lambda k: [*map(int, _split(k))]):
            exercise, _ = _split(key)
            ret.setdefault(exercise, []).append(value[key])
        return ret


class StackedStatus(MatrixKind):
    name = 'stacked_status'
    judged_only = True
    series_scoped = True
    students_only = True

    def contributions(self, row, options):
        yield f'{row["exercise"]},{row["status"]}', 1

    def view(self, value):
        ret = []
        for key in sorted(value, key=lambda k: [*map(int, _split(k))]):
            exercise, status = map(int, _split(key))
            ret.append({
                'exerciseId': exercise,
                'status': SubmissionStatus(status).label,
                'count': value[key],
            })
        return ret


class Timeseries(MatrixKind):
    name = 'timeseries'
    judged_only = True
    series_scoped = True
    students_only = True
    window_days = (14, 0)

    def contributions(self, row, options):
        date = row['createdAt'].strftime('%Y-%m-%d')
        yield f'{row["exercise"]},{date},{row["status"]}', 1

    def view(self, value):
        ret = {}
        for key in sorted(value):
            exercise, date, status = _split(key)
            ret.setdefault(exercise, []).append({
                'date': date,
                'status': SubmissionStatus(int(status)).label,
                'count': value[key],
            })
        return ret


class CumulativeTimeseries(MatrixKind):
    '''
    When each user first solved each exercise.

    The raw value maps "exercise,user" to the earliest correct submission
    time, so merging keeps the minimum instead of adding.
    '''
    name = 'cumulative_timeseries'
    judged_only = True
    series_scoped = True
    students_only = True
    window_days = (14, 1)

    def extra_filter(self):
        return {'status': int(SubmissionStatus.CORRECT)}

    def contributions(self, row, options):
        yield f'{row["exercise"]},{row["user"]}', row['createdAt'].isoformat()

    def combine(self, a, b):
        return min(a, b)

    def view(self, value):
        ret = {}
        for key, first_correct in value.items():
            exercise, _ = _split(key)
            ret.setdefault(exercise, []).append(first_correct)
        return {k: sorted(v) for k, v in ret.items()}


KINDS: Dict[str, MatrixKind] = {
    kind.name: kind
    for kind in (
        Punchcard(),
        Heatmap(),
        Violin(),
        StackedStatus(),
        Timeseries(),
        CumulativeTimeseries(),
    )
}


class IncrementalAggregator:
    '''
    Computes one matrix for one set of options, resuming from its cache.

    Judged-only kinds never move their cursor past a submission in scope
    that is still queued or running, so it is counted once judged.
    '''
    FIELDS = ('id', 'exercise', 'user', 'status', 'created_at')

    def __init__(
        self,
        kind: str,
        options: MatrixOptions = MatrixOptions(),
        cache: Optional[RedisCache] = None,
        batch_size: Optional[int] = None,
    ):
        if kind not in KINDS:
            raise ValueError(f'unknown matrix kind {kind!r}')
        self.kind = KINDS[kind]
        if options.series_id is not None and options.course_id is None:
            series = Series(options.series_id)
            if not series:
                raise engine.DoesNotExist(f'series [{options.series_id}]')
            options = options._replace(course_id=series.course_id)
        self.options = options
        self.cache = cache or RedisCache()
        self.batch_size = batch_size or config.AGGREGATION_BATCH_SIZE

    @property
    def key(self) -> str:
        return self.kind.cache_key(self.options)

    def rows(self, q: Dict[str, Any]):
        return engine.Submission.objects(__raw__=q).only(
            *self.FIELDS).order_by('id').as_pymongo()

    def scope_filter(self) -> Dict[str, Any]:
        '''
        filter of the rows in scope, whatever their status or id
        '''
        q = {}
        options = self.options
        if options.course_id is not None:
            q['course'] = options.course_id
        if options.user_id is not None:
            q['user'] = options.user_id
        if options.series_id is not None and self.kind.series_scoped:
            series = Series(options.series_id)
            q['exercise'] = {'$in': [*(series.exercise_ids or [])]}
        if self.kind.students_only and options.course_id is not None:
            admins = Course(options.course_id).admin_ids()
            if options.user_id is None:
                q['user'] = {'$nin': admins}
            elif options.user_id in admins:
                q['user'] = {'$in': []}
        window = self.kind.window(options)
        if window is not None:
            start, end = window
            q['createdAt'] = {'$gte': start, '$lte': end}
        return q

    def pending_guard(self) -> Optional[int]:
        '''
        the smallest id of a pending submission in scope, if any
        '''
        if not self.kind.judged_only:
            return None
        doc = self.rows({
            **self.scope_filter(),
            'status': {
                '$in': [int(s) for s in SubmissionStatus.pending()]
            },
        }).first()
        return None if doc is None else doc['_id']

    def query(self, after: int, upto: Optional[int] = None) -> Dict[str, Any]:
        q = self.scope_filter()
        if self.kind.judged_only:
            q['status'] = {
                '$in': [int(s) for s in SubmissionStatus.judged()]
            }
        q.update(self.kind.extra_filter())
        id_range = {'$gt': after}
        bound = self.pending_guard()
        if upto is not None:
            id_range['$lte'] = upto
        if bound is not None:
            id_range['$lt'] = bound
        q['_id'] = id_range
        return q

    def _batches(self, q: Dict[str, Any]) -> Iterable[List[Row]]:
        last = q['_id']['$gt']
        while True:
            batch = [
                *self.rows({
                    **q,
                    '_id': {
                        **q['_id'],
                        '$gt': last,
                    },
                }).limit(self.batch_size)
            ]
            if not batch:
                return
            yield batch
            if len(batch) < self.batch_size:
                return
            last = batch[-1]['_id']

    def compute_range(
        self,
        after: int = 0,
        upto: Optional[int] = None,
    ) -> Tuple[Optional[int], Value]:
        '''
        aggregate the rows in scope with `after < id <= upto`

        Returns:
            tuple: (largest id aggregated or None, raw value)
        '''
        value, until = {}, None
        for batch in self._batches(self.query(after, upto)):
            contributions = itertools.chain.from_iterable(
                self.kind.contributions(row, self.options) for row in batch)
            for k, v in contributions:
                value[k] = self.kind.combine(value[k], v) if k in value else v
            until = batch[-1]['_id']
        return until, value

    def load(self) -> Dict[str, Any]:
        base = self.cache.get_json(self.key)
        if base is None:
            return {'until': 0, 'value': {}}
        return base

    def fetch(self) -> Dict[str, Any]:
        '''
        merge everything newer than the cached cursor and store the result
        '''
        base = self.load()
        until, value = self.compute_range(base['until'])
        if until is None:
            return base
        base = {
            'until': until,
            'value': self.kind.merge(base['value'], value),
        }
        self.cache.set_json(self.key, base)
        return base

    def view(self) -> Any:
        return self.kind.view(self.fetch()['value'])

    def drop(self):
        self.cache.delete(self.key)
