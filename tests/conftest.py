import pytest

from app import app as flask_app
from mongo import config
from mongo.submission import DeferredQueue, EvaluationDispatcher, set_dispatcher
from tests import utils


@pytest.fixture(autouse=True)
def storage(tmp_path, monkeypatch):
    path = tmp_path / 'submissions'
    monkeypatch.setattr(config, 'SUBMISSIONS_STORAGE_PATH', str(path))
    return path


@pytest.fixture(autouse=True)
def clean_db():
    utils.drop_db()
    yield
    utils.drop_db()


@pytest.fixture
def fake_runner():
    return utils.FakeRunner()


@pytest.fixture
def task_queue():
    return DeferredQueue()


@pytest.fixture(autouse=True)
def dispatcher(task_queue, fake_runner):
    dispatcher = EvaluationDispatcher(
        task_queue=task_queue,
        runner=fake_runner,
    )
    set_dispatcher(dispatcher)
    yield dispatcher
    set_dispatcher(None)


@pytest.fixture
def app():
    return flask_app(testing=True)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def client_of(app):
    '''
    a test client logged in as the given user
    '''

    def client_of(user):
        client = app.test_client()
        client.set_cookie('piann', utils.cookie_of(user))
        return client

    return client_of
