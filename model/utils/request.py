from functools import wraps
from flask import request, current_app
from mongo import engine
from .response import *

__all__ = ('Request', )

type_map = {
    'int': int,
    'list': list,
    'str': str,
    'dict': dict,
    'bool': bool,
    'None': type(None)
}


def _candidate_keys(name: str):
    parts = [p for p in name.split('_') if p]
    camel = parts[0] + ''.join(p.capitalize()
                               for p in parts[1:]) if parts else name
    return [camel, name]


def _cast(value, target_type):
    if target_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', 'false'):
            return value.lower() == 'true'
        raise ValueError(f'can not cast {value!r} to bool')
    return target_type(value)


class _Request(type):

    def __getattr__(self, content_type):
        '''
        `Request.json('exercise_id: int', 'code')` injects the named
        values of the request body as keyword arguments; `Request.args`
        does the same for the query string. A missing value is passed
        as None; a typed value that can not be cast answers 400.
        '''

        def get(*keys, vars_dict={}):

            def data_func(func):

                @wraps(func)
                def wrapper(*args, **kwargs):
                    if content_type == 'json':
                        request_data = request.get_json(silent=True) or {}
                    else:
                        request_data = getattr(request, content_type)
                    if request_data is None:
                        return HTTPError(
                            f'Unaccepted Content-Type {content_type}', 415)
                    for key_spec in keys:
                        name, _, type_str = key_spec.partition(':')
                        name = name.strip()
                        target_type = type_map.get(type_str.strip())
                        value = next(
                            (request_data[k] for k in _candidate_keys(name)
                             if k in request_data),
                            None,
                        )
                        if value is not None and target_type is not None:
                            try:
                                value = _cast(value, target_type)
                            except (ValueError, TypeError) as e:
                                current_app.logger.info(
                                    f'[Request Parsing] bad {name!r}: {e} '
                                    f'[caller={func.__name__}]')
                                return HTTPError(
                                    'Requested Value With Wrong Type', 400)
                        kwargs[name] = value
                    for v in vars_dict:
                        kwargs[v] = request_data.get(vars_dict[v])
                    return func(*args, **kwargs)

                return wrapper

            return data_func

        return get


class Request(metaclass=_Request):

    @staticmethod
    def doc(src, des, cls):
        '''
        load the document whose id is the route argument `src` and pass
        it as `des`, answering 404 when it does not exist
        '''

        def deco(func):

            @wraps(func)
            def wrapper(*args, **ks):
                doc = cls(ks.pop(src))
                if not doc:
                    return HTTPError(f'{doc} not found', 404)
                ks[des] = doc
                try:
                    return func(*args, **ks)
                except engine.DoesNotExist as e:
                    return HTTPError(str(e), 404)

            return wrapper

        return deco
