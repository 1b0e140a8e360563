"""
An in-memory Kubernetes API server served through requests_mock.

It understands just enough of the REST surface used by the gateway controller:
get and list of core and Gateway API objects, JSON merge-patch conditioned on
resourceVersion, status subresource patch/replace and event creation.
"""
import copy
import re
import uuid
from urllib.parse import urlparse, parse_qs

import requests_mock

PATH_REGEX = re.compile(
    r'^/(?:api/v1|apis/(?P<group>[^/]+)/[^/]+)'
    r'(?:/namespaces/(?P<namespace>[^/]+))?'
    r'/(?P<plural>[^/]+)(?:/(?P<name>[^/]+))?(?:/(?P<subresource>status))?$'
)

KINDS = {
    'GatewayClass': ('gatewayclasses', 'gateway.networking.k8s.io/v1'),
    'Gateway': ('gateways', 'gateway.networking.k8s.io/v1'),
    'HTTPRoute': ('httproutes', 'gateway.networking.k8s.io/v1'),
    'Service': ('services', 'v1'),
    'Secret': ('secrets', 'v1'),
    'Namespace': ('namespaces', 'v1'),
    'Node': ('nodes', 'v1'),
}


def merge_patch(target, patch):
    """Apply an RFC 7386 JSON merge patch and return the result."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    if not isinstance(target, dict):
        target = {}
    result = dict(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


class MockKubeAPI(object):

    def __init__(self, url='http://test-kube.example.com'):
        self.url = url
        self.objects = {}
        self.events = []
        self.patches = []
        self.resource_version = 0

    def _next_version(self):
        self.resource_version += 1
        return str(self.resource_version)

    def add(self, obj):
        """Store an object, filling in the metadata the API server would."""
        obj = copy.deepcopy(obj)
        plural, api_version = KINDS[obj['kind']]
        obj.setdefault('apiVersion', api_version)
        metadata = obj.setdefault('metadata', {})
        metadata.setdefault('uid', str(uuid.uuid4()))
        metadata.setdefault('generation', 1)
        metadata['resourceVersion'] = self._next_version()
        self.objects[(plural, metadata.get('namespace'), metadata['name'])] = obj
        return obj

    def get(self, kind, namespace, name):
        plural, _ = KINDS[kind]
        return self.objects.get((plural, namespace, name))

    def delete(self, kind, namespace, name):
        plural, _ = KINDS[kind]
        self.objects.pop((plural, namespace, name), None)

    def register(self, mocker):
        mocker.register_uri(requests_mock.ANY, re.compile('^' + re.escape(self.url)),
                            json=self._dispatch)
        return mocker

    @staticmethod
    def _status(context, code, message):
        context.status_code = code
        return {'kind': 'Status', 'apiVersion': 'v1', 'status': 'Failure',
                'message': message, 'code': code}

    def _dispatch(self, request, context):
        url = urlparse(request.url)
        match = PATH_REGEX.match(url.path)
        if match is None:
            return self._status(context, 404, 'unknown path {}'.format(url.path))
        parts = match.groupdict()
        query = {key: values[0] for key, values in parse_qs(url.query).items()}
        handler = getattr(self, '_handle_' + request.method.lower(), None)
        if handler is None:
            return self._status(context, 405, 'method not allowed')
        return handler(request, context, parts, query)

    def _handle_get(self, request, context, parts, query):
        plural, namespace, name = parts['plural'], parts['namespace'], parts['name']
        if name is not None:
            obj = self.objects.get((plural, namespace, name))
            if obj is None:
                return self._status(context, 404, '{} "{}" not found'.format(plural, name))
            return copy.deepcopy(obj)

        selector = {}
        if query.get('labelSelector'):
            for requirement in query['labelSelector'].split(','):
                key, _, value = requirement.partition('=')
                selector[key] = value
        items = []
        for (kind, ns, _), obj in sorted(self.objects.items(), key=lambda item: item[0][2]):
            if kind != plural or (namespace is not None and ns != namespace):
                continue
            labels = obj['metadata'].get('labels') or {}
            if all(labels.get(key) == value for key, value in selector.items()):
                items.append(copy.deepcopy(obj))
        return {
            'kind': 'List',
            'metadata': {'resourceVersion': str(self.resource_version)},
            'items': items,
        }

    def _check_version(self, context, obj, body):
        version = (body.get('metadata') or {}).get('resourceVersion')
        if version is not None and version != obj['metadata']['resourceVersion']:
            return self._status(context, 409, 'the object has been modified')
        return None

    def _handle_patch(self, request, context, parts, query):
        key = (parts['plural'], parts['namespace'], parts['name'])
        obj = self.objects.get(key)
        if obj is None:
            return self._status(context, 404, '{} "{}" not found'.format(*key[::2]))
        body = request.json()
        self.patches.append((key, parts['subresource'], copy.deepcopy(body)))
        conflict = self._check_version(context, obj, body)
        if conflict is not None:
            return conflict

        body.get('metadata', {}).pop('resourceVersion', None)
        if parts['subresource'] == 'status':
            obj = merge_patch(obj, {'status': body.get('status', {})})
        else:
            body.pop('status', None)
            obj = merge_patch(obj, body)
        obj['metadata']['resourceVersion'] = self._next_version()
        metadata = obj['metadata']
        if metadata.get('deletionTimestamp') and not metadata.get('finalizers'):
            self.objects.pop(key, None)
        else:
            self.objects[key] = obj
        return copy.deepcopy(obj)

    def _handle_put(self, request, context, parts, query):
        key = (parts['plural'], parts['namespace'], parts['name'])
        obj = self.objects.get(key)
        if obj is None or parts['subresource'] != 'status':
            return self._status(context, 404, '{} "{}" not found'.format(*key[::2]))
        body = request.json()
        conflict = self._check_version(context, obj, body)
        if conflict is not None:
            return conflict
        obj = copy.deepcopy(obj)
        obj['status'] = body.get('status', {})
        obj['metadata']['resourceVersion'] = self._next_version()
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def _handle_post(self, request, context, parts, query):
        if parts['plural'] != 'events':
            return self._status(context, 405, 'only events can be created')
        body = request.json()
        self.events.append(body)
        context.status_code = 201
        return body
