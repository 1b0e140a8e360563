from kube.exceptions import KubeHTTPException
from kube.resources import Resource
from datetime import datetime, timezone
import uuid

MICROTIME_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'


class Events(Resource):
    """
    Events resource.
    """
    api_prefix = 'apis'
    api_version = 'events.k8s.io/v1'
    short_name = 'ev'
    plural = 'events'

    def create(self, namespace, regarding, message, ctx=None, **kwargs):
        """
        Record an event about the regarding object, which is a full API object
        """
        metadata = regarding['metadata']
        url = self.path(namespace)
        data = {
            'kind': 'Event',
            'apiVersion': self.api_version,
            'metadata': {
                'namespace': namespace,
                'name': '{}.{}'.format(metadata['name'], uuid.uuid4().hex[:16]),
            },
            'eventTime': datetime.now(timezone.utc).strftime(MICROTIME_FORMAT),
            'reportingController': kwargs.get('controller', ''),
            'reportingInstance': kwargs.get('instance', ''),
            'action': kwargs.get('action', 'Reconcile'),
            'note': message,
            'type': kwargs.get('type', 'Normal'),
            'reason': kwargs.get('reason', ''),
            'regarding': {
                'apiVersion': regarding.get('apiVersion', ''),
                'kind': regarding.get('kind', ''),
                'namespace': metadata.get('namespace', ''),
                'name': metadata['name'],
                'uid': metadata.get('uid', ''),
                'resourceVersion': metadata.get('resourceVersion', ''),
            },
        }

        response = self.http_post(url, json=data, ctx=ctx)
        if not response.status_code == 201:
            raise KubeHTTPException(response, 'create Event for namespace {}'.format(namespace))  # noqa

        return response
