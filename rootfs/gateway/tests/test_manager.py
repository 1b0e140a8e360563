"""
Unit tests for the watch plumbing and the workers of the controller manager.

Run the tests with './manage.py test gateway'
"""
import copy

from kube import KubeException
from gateway.handlers import GatewayMapper
from gateway.manager import ControllerManager, generation_changed, version_changed
from gateway.ownership import OwnershipFilter
from gateway.reconcilers import Result
from gateway.tests import (
    CONTROLLER_NAME, TestCase, gateway, gateway_class, httproute, https_listener, service, tls_secret,
)
from gateway.workqueue import WorkQueue


class FakeWatch(object):
    """Replays canned listings and event streams, stopping the manager when out of streams."""

    def __init__(self, manager, kind, handler, listings, streams):
        self.manager = manager
        self.kind = kind
        self.handler = handler
        self.listings = list(listings)
        self.streams = list(streams)
        self.versions = []

    def list(self):
        return self.listings.pop(0)

    def stream(self, resource_version):
        self.versions.append(resource_version)
        if not self.streams:
            self.manager.stop_event.set()
            return []
        events = self.streams.pop(0)
        if isinstance(events, Exception):
            raise events
        return events


def modified(obj, generation=None):
    obj = copy.deepcopy(obj)
    metadata = obj['metadata']
    metadata['resourceVersion'] = str(int(metadata.get('resourceVersion', '0')) + 100)
    if generation is not None:
        metadata['generation'] = generation
    return obj


class ControllerManagerTest(TestCase):

    def setUp(self):
        super().setUp()
        self.api.add(gateway_class())
        ownership = OwnershipFilter(self.kube, CONTROLLER_NAME)
        self.manager = ControllerManager(
            self.kube, None, None, GatewayMapper(self.kube, ownership), ownership)
        self.gateways = self.manager.watches()[1]

    def queued(self, queue=None):
        queue = queue or self.manager.gateway_queue
        keys = []
        while True:
            key = queue.get(timeout=0)
            if key is None:
                return keys
            keys.append(key)
            queue.done(key)

    def test_predicates(self):
        old = {'metadata': {'generation': 1, 'resourceVersion': '1'}}
        self.assertTrue(generation_changed(None, old))
        self.assertFalse(generation_changed(old, {'metadata': {'generation': 1, 'resourceVersion': '2'}}))
        self.assertTrue(generation_changed(old, {'metadata': {'generation': 2, 'resourceVersion': '2'}}))
        self.assertFalse(version_changed(old, copy.deepcopy(old)))
        self.assertTrue(version_changed(old, {'metadata': {'generation': 1, 'resourceVersion': '2'}}))

    def test_watches(self):
        kinds = [watch.kind for watch in self.manager.watches()]
        self.assertEqual(kinds, ['GatewayClass', 'Gateway', 'HTTPRoute', 'Service', 'Secret'])
        self.assertEqual(self.manager.watches()[0].namespace, '')

    def test_gateway_added(self):
        self.manager.dispatch(self.gateways, 'ADDED', self.api.add(gateway('gw')))
        self.manager.dispatch(self.gateways, 'ADDED', self.api.add(gateway('foreign', class_name='other')))
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_gateway_status_update_is_ignored(self):
        gw = self.api.add(gateway())
        self.manager.dispatch(self.gateways, 'ADDED', gw)
        self.queued()
        self.manager.dispatch(self.gateways, 'MODIFIED', modified(gw))
        self.assertEqual(self.queued(), [])
        self.manager.dispatch(self.gateways, 'MODIFIED', modified(gw, generation=2))
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_gateway_leaving_the_class(self):
        gw = self.api.add(gateway())
        self.manager.dispatch(self.gateways, 'ADDED', gw)
        self.queued()
        moved = modified(gw, generation=2)
        moved['spec']['gatewayClassName'] = 'other'
        self.manager.dispatch(self.gateways, 'MODIFIED', moved)
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_gateway_deletion(self):
        gw = self.api.add(gateway())
        self.manager.dispatch(self.gateways, 'ADDED', gw)
        self.queued()
        deleting = modified(gw)
        deleting['metadata']['deletionTimestamp'] = '2026-01-01T00:00:00Z'
        self.manager.dispatch(self.gateways, 'MODIFIED', deleting)
        self.assertEqual(self.queued(), [('web', 'gw')])
        self.manager.dispatch(self.gateways, 'DELETED', deleting)
        self.assertEqual(self.queued(), [])
        self.assertNotIn(('Gateway', 'web', 'gw'), self.manager.cache)

    def test_gateway_class(self):
        watch = self.manager.watches()[0]
        gateway_class_obj = self.api.get('GatewayClass', None, 'sc')
        self.manager.dispatch(watch, 'ADDED', gateway_class_obj)
        self.manager.dispatch(watch, 'MODIFIED', modified(gateway_class_obj))
        self.assertEqual(self.queued(self.manager.class_queue), ['sc'])

    def test_service_changes(self):
        self.api.add(gateway())
        self.api.add(httproute('site'))
        watch = self.manager.watches()[3]
        svc = self.api.add(service())
        self.manager.dispatch(watch, 'ADDED', svc, seed=True)
        self.assertEqual(self.queued(), [])
        self.manager.dispatch(watch, 'MODIFIED', svc)
        self.assertEqual(self.queued(), [])
        self.manager.dispatch(watch, 'MODIFIED', modified(svc))
        self.assertEqual(self.queued(), [('web', 'gw')])
        self.manager.dispatch(watch, 'DELETED', svc)
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_secret_rotation(self):
        self.api.add(gateway(listeners=[https_listener('https', 'example.com', secret='site-tls')]))
        watch = self.manager.watches()[4]
        secret = self.api.add(tls_secret('site-tls', cert=b'cert', key=b'key'))
        self.manager.dispatch(watch, 'ADDED', secret, seed=True)
        self.assertEqual(self.queued(), [])
        # only the metadata of a Secret is remembered
        self.assertEqual(self.manager.cache[('Secret', 'web', 'site-tls')], {'metadata': secret['metadata']})
        self.manager.dispatch(watch, 'MODIFIED', modified(secret))
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_run_watch_relists_when_expired(self):
        gw = self.api.add(gateway())
        watch = FakeWatch(self.manager, 'Gateway', self.manager.on_gateway,
                          listings=[([gw], '10'), ([gw], '20')],
                          streams=[
                              [{'type': 'BOOKMARK', 'object': {'metadata': {'resourceVersion': '11'}}},
                               {'type': 'ERROR', 'object': {'code': 410, 'message': 'too old'}}],
                              [{'type': 'MODIFIED', 'object': modified(gw, generation=2)}],
                          ])
        self.manager.run_watch(watch)
        self.assertEqual(watch.versions, ['10', '20', str(int(gw['metadata']['resourceVersion']) + 100)])
        self.assertEqual(self.queued(), [('web', 'gw')])

    def test_run_watch_survives_errors(self):
        self.manager.stop_event.wait = lambda timeout: False
        watch = FakeWatch(self.manager, 'Gateway', self.manager.on_gateway,
                          listings=[([], '10')],
                          streams=[KubeException('connection reset'), []])
        self.manager.run_watch(watch)
        self.assertEqual(watch.versions, ['10', '10', '10'])

    def test_process_requeues(self):
        calls = []

        def reconcile(namespace, name, ctx=None):
            calls.append((namespace, name))
            if len(calls) == 1:
                return Result(requeue_after=0.01)
            if len(calls) == 2:
                raise RuntimeError('boom')
            self.manager.stop()
            return Result()

        self.manager.gateway_queue = WorkQueue(backoff_base=0.01)
        self.manager.gateway_queue.add(('web', 'gw'))
        self.manager.process(self.manager.gateway_queue, reconcile, 'gateway')
        self.assertEqual(calls, [('web', 'gw')] * 3)
