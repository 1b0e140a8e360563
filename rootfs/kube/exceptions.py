class KubeException(Exception):
    def __init__(self, *args, **kwargs):
        Exception.__init__(self, *args, **kwargs)


class KubeHTTPException(KubeException):
    def __init__(self, response, errmsg, *args, **kwargs):
        self.response = response

        msg = errmsg.format(*args)
        msg = "failed to {}: {} {}".format(msg, response.status_code, response.reason)
        KubeException.__init__(self, msg, *args, **kwargs)

    @property
    def status_code(self):
        return self.response.status_code

    @property
    def not_found(self):
        return self.response.status_code == 404

    @property
    def conflict(self):
        return self.response.status_code == 409