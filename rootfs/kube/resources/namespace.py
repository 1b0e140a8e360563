from kube.resources import Resource


class Namespace(Resource):
    short_name = 'ns'
    plural = 'namespaces'
    namespaced = False

    def get(self, name=None, ignore_exception=False, ctx=None, **kwargs):
        return super().get(None, name, ignore_exception, ctx=ctx, **kwargs)
