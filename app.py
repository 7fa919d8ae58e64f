import os
import logging
from logging.config import dictConfig
from flask import Flask
from model import *
from mongo import *
from mongo import config as mongo_config
from config import LOGGING_CONFIG, LOG_DIR


def app(testing: bool = False):
    # Setup logging
    os.makedirs(LOG_DIR, exist_ok=True)
    dictConfig(LOGGING_CONFIG)

    # Create a flask app
    app = Flask(__name__)
    app.config['TESTING'] = testing
    app.url_map.strict_slashes = False

    # Register flask blueprint
    api2prefix = [
        (submission_api, '/submission'),
    ]
    for api, prefix in api2prefix:
        app.register_blueprint(api, url_prefix=prefix)

    # tests inject their own dispatcher
    if not testing:
        setup_judge(app)

    if __name__ != '__main__':
        logger = logging.getLogger('gunicorn.error')
        app.logger.setLevel(logger.level)

    return app


def setup_judge(app: Flask):
    pool = JudgeWorkerPool(workers=mongo_config.JUDGE_WORKERS).start()
    set_dispatcher(EvaluationDispatcher(task_queue=pool))
    names = [sb['name'] for sb in mongo_config.SANDBOX_INSTANCES]
    app.logger.info(f'judge ready [workers={mongo_config.JUDGE_WORKERS}, '
                    f'sandboxes={names}]')
