"""
A thin Kubernetes REST client: one shared session and one Resource object per
kind the gateway controller reads, patches or watches.
"""
from collections import OrderedDict
import json
import logging
import os
import re
from urllib.parse import urljoin

from packaging.version import Version, parse
import requests
import requests.exceptions
from requests_toolbelt import user_agent

from controller import __version__ as controller_version
from kube.exceptions import KubeException, KubeHTTPException  # noqa


logger = logging.getLogger(__name__)
session = None

DEFAULT_TIMEOUT = 30

SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'

VERBS = {
    'get': 'retrieving data from',
    'post': 'posting data to',
    'put': 'putting data to',
    'patch': 'patching data to',
}


def get_k8s_session(k8s_api_verify_tls):
    """The process-wide session, authenticated with the pod service account when mounted."""
    global session
    if session is None:
        session = requests.Session()
        session.headers = {
            'Content-Type': 'application/json',
            'User-Agent': user_agent('Gateway Controller', controller_version)
        }
        token_path = os.path.join(SERVICE_ACCOUNT_DIR, 'token')
        if os.path.exists(token_path):
            with open(token_path) as token_file:
                session.headers['Authorization'] = 'Bearer ' + token_file.read().strip()
        if k8s_api_verify_tls:
            session.verify = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')
        else:
            session.verify = False
    return session


class KubeHTTPClient(object):
    resource_mapping = OrderedDict()

    def __init__(self, url, k8s_api_verify_tls=True, timeout=DEFAULT_TIMEOUT):
        self.url = url
        self.k8s_api_verify_tls = k8s_api_verify_tls
        self.timeout = timeout
        self.session = get_k8s_session(self.k8s_api_verify_tls)

        from kube.resources import Resource  # lazy load
        self.resource_mapping = OrderedDict()
        for res in Resource:
            # gateways, httproutes... plus the singular and short names
            component = res.plural
            if component in self.resource_mapping:
                continue
            self.resource_mapping[component] = res(self.url, self.k8s_api_verify_tls, self.timeout)
            for alias in (res.__name__.lower(), res.short_name):
                if alias and alias != component:
                    self.resource_mapping[alias] = component

    def __getattr__(self, name):
        mapping = object.__getattribute__(self, 'resource_mapping')
        if name in mapping:
            component = mapping[name]
            if isinstance(component, str):
                return mapping[component]
            return component
        return object.__getattribute__(self, name)

    def version(self):
        """Get Kubernetes version"""
        response = self.http_get('/version')
        if self.unhealthy(response.status_code):
            raise KubeHTTPException(response, 'fetching Kubernetes version')

        data = response.json()
        # minor carries suffixes like "29+" on managed clusters
        parsed_version = parse(
            re.sub(r"[^0-9\.]", '', '{}.{}'.format(data['major'], data['minor'])))
        return Version('{}'.format(parsed_version))

    @staticmethod
    def unhealthy(status_code):
        return not 200 <= status_code <= 299

    @staticmethod
    def query_params(labels=None, fields=None, resource_version=None):
        """
        Encode label and field selectors the way the API server expects them.

        A list value becomes a set-based "in" requirement, everything else an equality.
        """
        query = {}
        if labels:
            selectors = []
            for key, value in labels.items():
                if isinstance(value, (list, tuple)):
                    selectors.append('{} in({})'.format(key, ','.join(value)))
                else:
                    selectors.append('{}={}'.format(key, value))
            query['labelSelector'] = ','.join(selectors)

        if fields:
            query['fieldSelector'] = ','.join(
                '{}={}'.format(key, value) for key, value in fields.items())

        if resource_version:
            query['resourceVersion'] = resource_version

        return query

    def _request(self, method, path, ctx=None, **kwargs):
        """
        Send one request, a ctx is checked first and bounds the timeout.
        """
        if ctx is not None:
            ctx.check()
            kwargs["timeout"] = ctx.timeout(self.timeout)
        else:
            kwargs.setdefault("timeout", self.timeout)
        url = urljoin(self.url, path)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as err:
            # reraise as KubeException, but log stacktrace.
            message = "There was a problem {} the Kubernetes API server. URL: {}".format(
                VERBS[method], url)
            logger.error(message)
            raise KubeException(message) from err

    def http_get(self, path, params=None, **kwargs):
        return self._request('get', path, params=params, **kwargs)

    def http_post(self, path, json=None, **kwargs):
        return self._request('post', path, json=json, **kwargs)

    def http_put(self, path, json=None, **kwargs):
        return self._request('put', path, json=json, **kwargs)

    def http_patch(self, path, json=None, **kwargs):
        # callers pick the patch media type through the Content-Type header
        return self._request('patch', path, json=json, **kwargs)

    def http_stream(self, path, params=None, timeout=None):
        """
        Make a streaming GET request to the k8s server and yield decoded watch events.
        """
        url = urljoin(self.url, path)
        try:
            response = self.session.get(url, params=params, stream=True, timeout=timeout)
        except requests.exceptions.RequestException as err:
            message = "There was a problem watching " \
                      "the Kubernetes API server. URL: {}, params: {}".format(url, params)
            logger.error(message)
            raise KubeException(message) from err

        if self.unhealthy(response.status_code):
            raise KubeHTTPException(response, 'watch {}', path)

        try:
            for line in response.iter_lines():
                if line:
                    yield json.loads(line)
        except requests.exceptions.RequestException as err:
            raise KubeException("watch of {} was interrupted".format(url)) from err
        finally:
            response.close()
