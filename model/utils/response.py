from flask import jsonify

__all__ = ['HTTPResponse', 'HTTPError']


class HTTPBaseResponese(tuple):

    def __new__(
        cls,
        resp,
        status_code=200,
        cookies={},
    ):
        for c, value in cookies.items():
            if value is None:
                resp.delete_cookie(c)
            else:
                resp.set_cookie(c, value, httponly=True, samesite='Lax')
        return super().__new__(tuple, (resp, status_code))


class HTTPResponse(HTTPBaseResponese):

    def __new__(
        cls,
        message='',
        status_code=200,
        status='ok',
        data=None,
        cookies={},
    ):
        resp = jsonify({
            'status': status,
            'message': message,
            'data': data,
        })
        return super().__new__(
            HTTPBaseResponese,
            resp,
            status_code,
            cookies,
        )


class HTTPError(HTTPResponse):

    def __new__(
        cls,
        message,
        status_code,
        data=None,
        logout=False,
    ):
        cookies = {'piann': None} if logout else {}
        return super().__new__(
            HTTPResponse,
            message,
            status_code,
            'err',
            data,
            cookies,
        )
