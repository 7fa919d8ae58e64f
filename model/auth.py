from functools import wraps

from mongo import *
from mongo.utils import jwt_decode
from .utils import *

__all__ = (
    'login_required',
    'identity_verify',
)


def login_required(func):
    '''Check if the user is login

    Returns:
        - A wrapped function
        - 403 Not Logged In
        - 403 Invalid Token
        - 403 Unknown User
    '''

    @wraps(func)
    @Request.cookies(vars_dict={'token': 'piann'})
    def wrapper(token, *args, **kwargs):
        if token is None:
            return HTTPError('Not Logged In', 403)
        json = jwt_decode(token)
        if json is None or not isinstance(json.get('data'), dict):
            return HTTPError('Invalid Token', 403, logout=True)
        user = User(json['data'].get('username', ''))
        if not user:
            return HTTPError('Unknown User', 403, logout=True)
        kwargs['user'] = user
        return func(*args, **kwargs)

    return wrapper


def identity_verify(*roles):
    '''Verify a logged in user's identity

    Usage:
        @identity_verify(Role.ADMIN, Role.STAFF)
        def rejudge(user): ...
    '''

    def verify(func):

        @wraps(func)
        @login_required
        def wrapper(user, *args, **kwargs):
            if user.role not in roles:
                return HTTPError('Insufficient Permissions', 403)
            kwargs['user'] = user
            return func(*args, **kwargs)

        return wrapper

    return verify
