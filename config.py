import os

# ============================================
# Logging Configuration
# ============================================

LOG_DIR = os.getenv('LOG_DIR', 'logs')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')
LOG_CONSOLE_LEVEL = os.getenv('LOG_CONSOLE_LEVEL', LOG_LEVEL)

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format':
            '[%(asctime)s] %(levelname)s in %(module)s:%(lineno)d: %(message)s',
        },
        'worker': {
            'format':
            '[%(asctime)s] %(levelname)s %(threadName)s %(module)s:%(lineno)d: %(message)s',
        },
    },
    'loggers': {
        # MongoDB is too verbose, set it to WARNING
        'pymongo': {
            'level': 'WARNING'
        },
        # connectionpool is rather annoying too
        # though it is useful when debugging sandbox network issues
        'urllib3.connectionpool': {
            'level': 'WARNING'
        },
        'flask.app': {
            'level': LOG_LEVEL,
            'handlers': ['console', 'file'],
            'propagate': False,
        },
        # judge workers run outside of the app context
        'mongo.submission': {
            'level': LOG_LEVEL,
            'handlers': ['worker', 'file'],
            'propagate': False,
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'stream': 'ext://flask.logging.wsgi_errors_stream',
            'formatter': 'default',
            'level': LOG_CONSOLE_LEVEL,
        },
        'worker': {
            'class': 'logging.StreamHandler',
            'formatter': 'worker',
            'level': LOG_CONSOLE_LEVEL,
        },
        'file': {
            'class': 'logging.FileHandler',
            'filename': LOG_DIR + '/judgeflow-debug.log',
            'formatter': 'default',
            'encoding': 'utf-8'
        }
    },
    'root': {
        'level': LOG_LEVEL,
        'handlers': ['console', 'file']
    }
}
