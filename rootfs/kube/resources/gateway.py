from kube.resources import Resource
from kube.exceptions import KubeHTTPException

GATEWAY_API_GROUP = 'gateway.networking.k8s.io'

MERGE_PATCH_HEADERS = {"Content-Type": "application/merge-patch+json"}


class GatewayAPIResource(Resource):
    abstract = True
    api_prefix = 'apis'
    api_version = GATEWAY_API_GROUP + '/v1'

    def patch(self, namespace, name, data, version=None, subresource=None, ctx=None):
        """
        Merge-patch an object, conditioned on version when given
        """
        if version is not None:
            data.setdefault("metadata", {})["resourceVersion"] = version
        url = self.path(namespace, name, subresource)
        response = self.http_patch(url, json=data, headers=MERGE_PATCH_HEADERS, ctx=ctx)
        if self.unhealthy(response.status_code):
            kind = self.kind if subresource is None else self.kind + ' ' + subresource
            raise KubeHTTPException(response, 'patch {} "{}"', kind, name)
        return response

    def patch_status(self, namespace, name, status, version, ctx=None):
        return self.patch(
            namespace, name, {"status": status}, version, subresource="status", ctx=ctx)


class GatewayClass(GatewayAPIResource):
    plural = "gatewayclasses"
    namespaced = False

    def get(self, name=None, ignore_exception=False, ctx=None, **kwargs):
        return super().get(None, name, ignore_exception, ctx=ctx, **kwargs)

    def update_status(self, name, data, ctx=None):
        """
        Replace the status of a GatewayClass, data must carry its resourceVersion
        """
        url = self.path(name=name, subresource="status")
        response = self.http_put(url, json=data, ctx=ctx)
        if self.unhealthy(response.status_code):
            raise KubeHTTPException(response, 'update GatewayClass "{}" status', name)
        return response


class Gateway(GatewayAPIResource):
    plural = "gateways"


class HTTPRoute(GatewayAPIResource):
    plural = "httproutes"
