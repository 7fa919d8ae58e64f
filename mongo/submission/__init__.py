from . import storage
from . import rate_limit
from . import exceptions
from . import verdict
from . import invalidation
from . import state
from . import runner
from . import dispatcher
from . import statistics
from . import submission

from .storage import *
from .rate_limit import *
from .exceptions import *
from .verdict import *
from .invalidation import *
from .state import *
from .runner import *
from .dispatcher import *
from .statistics import *
from .submission import *

__all__ = [
    *storage.__all__,
    *rate_limit.__all__,
    *exceptions.__all__,
    *verdict.__all__,
    *invalidation.__all__,
    *state.__all__,
    *runner.__all__,
    *dispatcher.__all__,
    *statistics.__all__,
    *submission.__all__,
]
