class ProviderException(Exception):
    def __init__(self, *args, **kwargs):
        Exception.__init__(self, *args, **kwargs)


class ProviderHTTPException(ProviderException):
    def __init__(self, response, errmsg, *args, **kwargs):
        self.response = response

        msg = errmsg.format(*args)
        detail = ''
        try:
            detail = response.json().get('message', '')
        except ValueError:
            pass
        msg = "failed to {}: {} {}".format(msg, response.status_code, detail or response.reason)
        ProviderException.__init__(self, msg, *args, **kwargs)


class ProviderNotFound(ProviderHTTPException):
    """The provider answered 404 for the requested object or collection."""
