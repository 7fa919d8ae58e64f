from datetime import datetime, timedelta

import pytest

from mongo import *
from mongo.submission import RateLimiter, RateLimitExceeded
from tests import utils

NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def user():
    return utils.create_user('limited')


def submit(user, now, **ks):
    return utils.create_submission(
        user=user,
        now=now,
        skip_rate_limit_check=ks.pop('skip_rate_limit_check', False),
        **ks,
    )


def test_first_submission_is_permitted(user):
    assert RateLimiter().permits(user, NOW)


def test_second_submission_too_fast_is_rejected(user):
    submit(user, NOW)
    with pytest.raises(RateLimitExceeded) as err:
        submit(user, NOW + timedelta(seconds=2))
    assert err.value.wait_for == pytest.approx(3)
    assert len(Submission.filter(user=user)) == 1


def test_submission_after_interval_is_accepted(user):
    submit(user, NOW)
    submit(user, NOW + timedelta(seconds=5))
    assert len(Submission.filter(user=user)) == 2


def test_limit_spans_exercises(user):
    submit(user, NOW)
    allowed, wait_for = RateLimiter().check(user, NOW + timedelta(seconds=1))
    assert not allowed
    assert wait_for == pytest.approx(4)


def test_limit_is_per_user(user):
    submit(user, NOW)
    other = utils.create_user('other')
    assert RateLimiter().permits(other, NOW + timedelta(seconds=1))


def test_explicit_bypass(user):
    submit(user, NOW)
    submit(user, NOW + timedelta(seconds=1), skip_rate_limit_check=True)
    assert len(Submission.filter(user=user)) == 2


def test_interval_is_configurable(user, monkeypatch):
    from mongo import config
    monkeypatch.setattr(config, 'SECONDS_BETWEEN_SUBMISSIONS', 60)
    submit(user, NOW)
    assert not RateLimiter().permits(user, NOW + timedelta(seconds=30))
