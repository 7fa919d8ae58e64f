from . import auth
from . import submission

from .auth import *
from .submission import *

__all__ = [
    *auth.__all__,
    *submission.__all__,
]
