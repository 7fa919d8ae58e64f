from . import request
from . import response

from .request import *
from .response import *

__all__ = [*request.__all__, *response.__all__]
