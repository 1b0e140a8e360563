import os
import pkgutil

from kube import DEFAULT_TIMEOUT, KubeHTTPClient, KubeHTTPException, get_k8s_session

WATCH_TIMEOUT_SECONDS = 300


class ResourceRegistry(type):
    """A registry of all Resources subclassed"""
    resources = []

    def __init__(cls, name, bases, attrs):
        if name != 'Resource' and not attrs.get('abstract', False):
            ResourceRegistry.resources.append(cls)

        super(ResourceRegistry, cls).__init__(name, bases, attrs)

    def __iter__(cls):
        return iter(cls.resources)


class Resource(KubeHTTPClient, metaclass=ResourceRegistry):
    api_version = 'v1'
    api_prefix = 'api'
    short_name = None
    plural = None
    namespaced = True

    def __init__(self, url, k8s_api_verify_tls=True, timeout=DEFAULT_TIMEOUT):
        self.url = url
        self.k8s_api_verify_tls = k8s_api_verify_tls
        self.timeout = timeout
        self.session = get_k8s_session(self.k8s_api_verify_tls)

    def api(self, tmpl, *args):
        """Return a fully-qualified Kubernetes API URL from a string template with args."""
        return "/{}/{}".format(self.api_prefix, self.api_version) + tmpl.format(*args)

    def path(self, namespace=None, name=None, subresource=None):
        """
        Build the URL of a collection, an object or one of its subresources.

        An empty namespace on a namespaced resource addresses the cluster-wide collection.
        """
        tmpl, args = "", []
        if self.namespaced and namespace:
            tmpl, args = "/namespaces/{}", [namespace]
        tmpl += "/{}".format(self.plural)
        if name is not None:
            tmpl += "/{}"
            args.append(name)
            if subresource is not None:
                tmpl += "/" + subresource
        return self.api(tmpl, *args)

    @property
    def kind(self):
        return type(self).__name__

    def get(self, namespace=None, name=None, ignore_exception=False, ctx=None, **kwargs):
        """
        Fetch a single object or a list, cluster-wide when namespace is empty
        """
        url = self.path(namespace, name)
        if name is not None:
            message = 'get {} "{}"'.format(self.kind, name)
        else:
            message = 'get {}s'.format(self.kind)
        if namespace and self.namespaced:
            message += ' in Namespace "{}"'.format(namespace)

        response = self.http_get(url, params=self.query_params(**kwargs), ctx=ctx)
        if not ignore_exception and self.unhealthy(response.status_code):
            raise KubeHTTPException(response, message)

        return response

    def watch(self, namespace=None, resource_version=None, timeout_seconds=WATCH_TIMEOUT_SECONDS):
        """
        Stream watch events of the collection, starting after resource_version.
        """
        params = self.query_params(resource_version=resource_version)
        params['watch'] = 'true'
        params['allowWatchBookmarks'] = 'true'
        params['timeoutSeconds'] = timeout_seconds
        return self.http_stream(
            self.path(namespace), params=params, timeout=timeout_seconds + 30)


# Load all Resource classes so the registry knows about them
for _, modname, _ in pkgutil.iter_modules([os.path.dirname(__file__)]):
    __import__('kube.resources.' + modname)
