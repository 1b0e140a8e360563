from kube.resources import Resource


class Node(Resource):
    plural = 'nodes'
    namespaced = False

    def get(self, name=None, ignore_exception=False, ctx=None, **kwargs):
        return super().get(None, name, ignore_exception, ctx=ctx, **kwargs)
