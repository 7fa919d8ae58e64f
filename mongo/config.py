import os
import json
import tempfile

FLASK_DEBUG = os.getenv('FLASK_DEBUG', 'False') == 'True'

MONGO_HOST = os.getenv('MONGO_HOST', 'mongomock://localhost')
MONGO_DB = os.getenv('MONGO_DB', 'judgeflow')

REDIS_HOST = os.getenv('REDIS_HOST')
REDIS_PORT = os.getenv('REDIS_PORT')

SUBMISSIONS_STORAGE_PATH = os.getenv(
    'SUBMISSIONS_STORAGE_PATH',
    tempfile.TemporaryDirectory(suffix='judgeflow-submissions').name,
)

# Used for rate limiting
SECONDS_BETWEEN_SUBMISSIONS = int(os.getenv('SECONDS_BETWEEN_SUBMISSIONS',
                                            '5'))
# code used to live in a TEXT column, which holds at most 2^16 - 1 bytes
MAX_CODE_BYTES = int(os.getenv('MAX_CODE_BYTES', str(64 * 1024)))

JUDGE_WORKERS = int(os.getenv('JUDGE_WORKERS', '2'))
SANDBOX_INSTANCES = json.loads(
    os.getenv(
        'SANDBOX_INSTANCES',
        '[{"name": "Sandbox-0", "url": "http://sandbox:1450", '
        '"token": "KoNoSandboxDa"}]',
    ))
SANDBOX_TIMEOUT = float(os.getenv('SANDBOX_TIMEOUT', '300'))

DEFAULT_HOST = os.getenv('DEFAULT_HOST', 'http://localhost:8080')

AGGREGATION_BATCH_SIZE = int(os.getenv('AGGREGATION_BATCH_SIZE', '1000'))

JWT_SECRET = os.getenv('JWT_SECRET', 'SuperSecretString')
