from . import engine
from . import user
from . import course
from . import exercise
from . import series
from . import submission

from .engine import *
from .user import *
from .course import *
from .exercise import *
from .series import *
from .submission import *

__all__ = [
    *engine.__all__,
    *user.__all__,
    *course.__all__,
    *exercise.__all__,
    *series.__all__,
    *submission.__all__,
]
