"""
Runtime around the reconcilers: list-then-watch threads feed two work queues,
each drained by a single worker thread.
"""
import logging
import threading

from kube import KubeException, KubeHTTPException
from gateway.context import Context
from gateway.exceptions import ReconcileCancelled
from gateway.workqueue import WorkQueue

logger = logging.getLogger(__name__)

WATCH_BACKOFF_MAX = 30
GONE = 410


class Watch(object):
    """One watched resource and the callback receiving its events."""

    def __init__(self, kind, resource, handler, namespace=''):
        self.kind = kind
        self.resource = resource
        self.handler = handler
        self.namespace = namespace if resource.namespaced else ''

    def list(self):
        if self.resource.namespaced:
            data = self.resource.get(self.namespace or None).json()
        else:
            data = self.resource.get().json()
        return data['items'], data['metadata'].get('resourceVersion')

    def stream(self, resource_version):
        return self.resource.watch(self.namespace or None, resource_version)


def object_key(obj):
    return (obj['metadata'].get('namespace'), obj['metadata']['name'])


def generation_changed(old, new):
    """Status-only updates keep the generation."""
    if old is None:
        return True
    return old['metadata'].get('generation') != new['metadata'].get('generation')


def version_changed(old, new):
    if old is None:
        return True
    return old['metadata'].get('resourceVersion') != new['metadata'].get('resourceVersion')


class ControllerManager(object):

    def __init__(self, kube, gateway_reconciler, class_reconciler, mapper, ownership,
                 namespace=''):
        self.kube = kube
        self.gateway_reconciler = gateway_reconciler
        self.class_reconciler = class_reconciler
        self.mapper = mapper
        self.ownership = ownership
        self.namespace = namespace
        self.stop_event = threading.Event()
        self.gateway_queue = WorkQueue()
        self.class_queue = WorkQueue()
        self.cache = {}
        self._cache_lock = threading.Lock()
        self.threads = []

    def watches(self):
        return [
            Watch('GatewayClass', self.kube.gatewayclass, self.on_gateway_class),
            Watch('Gateway', self.kube.gateways, self.on_gateway, self.namespace),
            Watch('HTTPRoute', self.kube.httproutes, self.on_httproute, self.namespace),
            Watch('Service', self.kube.svc, self.on_service, self.namespace),
            Watch('Secret', self.kube.secrets, self.on_secret, self.namespace),
        ]

    # cache

    def remember(self, kind, event_type, obj):
        """
        Store obj and return the previous version seen for it.

        Only Gateways are kept whole, other kinds keep their metadata so Secret
        data never stays in memory.
        """
        key = (kind, ) + object_key(obj)
        with self._cache_lock:
            old = self.cache.get(key)
            if event_type == 'DELETED':
                self.cache.pop(key, None)
            else:
                self.cache[key] = obj if kind == 'Gateway' else {'metadata': obj['metadata']}
        return old

    # event handlers

    def on_gateway_class(self, event_type, obj, old):
        if event_type == 'DELETED' or not generation_changed(old, obj):
            return
        self.class_queue.add(obj['metadata']['name'])

    def on_gateway(self, event_type, obj, old):
        if event_type == 'DELETED':
            return
        if event_type == 'ADDED' and old is None:
            if self.ownership.is_managed_quiet(obj):
                self.gateway_queue.add(object_key(obj))
            return
        deleting = bool(obj['metadata'].get('deletionTimestamp'))
        if not deleting and not generation_changed(old, obj):
            return
        if deleting or self.ownership.is_managed_quiet(obj) or \
                (old is not None and self.ownership.is_managed_quiet(old)):
            self.gateway_queue.add(object_key(obj))

    def on_httproute(self, event_type, obj, old):
        if event_type != 'DELETED' and not generation_changed(old, obj):
            return
        self.enqueue(self.mapper.find_gateways_for_httproute(obj))

    def on_service(self, event_type, obj, old):
        if event_type != 'DELETED' and not version_changed(old, obj):
            return
        self.enqueue(self.mapper.find_gateways_for_service(obj))

    def on_secret(self, event_type, obj, old):
        if event_type != 'DELETED' and not version_changed(old, obj):
            return
        self.enqueue(self.mapper.find_gateways_for_secret(obj))

    def enqueue(self, keys):
        for key in keys:
            self.gateway_queue.add(key)

    # watch loop

    def dispatch(self, watch, event_type, obj, seed=False):
        old = self.remember(watch.kind, event_type, obj)
        if seed and watch.kind not in ('GatewayClass', 'Gateway'):
            # the initial listing of Gateways already queues every managed one
            return
        try:
            watch.handler(event_type, obj, old)
        except KubeException as e:
            logger.error('failed to handle {} event for {} {}/{}: {}'.format(
                event_type, watch.kind, obj['metadata'].get('namespace'),
                obj['metadata']['name'], e))

    def run_watch(self, watch):
        resource_version, backoff, seeded = None, 1, False
        while not self.stop_event.is_set():
            try:
                if resource_version is None:
                    items, resource_version = watch.list()
                    for item in items:
                        self.dispatch(watch, 'ADDED', item, seed=not seeded)
                    seeded = True
                    logger.info('watching {} from resourceVersion {}'.format(
                        watch.kind, resource_version))

                for event in watch.stream(resource_version):
                    if self.stop_event.is_set():
                        return
                    event_type, obj = event.get('type'), event.get('object') or {}
                    if event_type == 'ERROR':
                        if obj.get('code') == GONE:
                            logger.warning('{} watch expired, re-listing'.format(watch.kind))
                            resource_version = None
                            break
                        raise KubeException('{} watch failed: {}'.format(
                            watch.kind, obj.get('message')))
                    resource_version = obj['metadata'].get('resourceVersion', resource_version)
                    if event_type == 'BOOKMARK':
                        continue
                    self.dispatch(watch, event_type, obj)
                backoff = 1
            except KubeHTTPException as e:
                if e.status_code == GONE:
                    resource_version = None
                    continue
                logger.error('{} watch failed: {}'.format(watch.kind, e))
                self.stop_event.wait(backoff)
                backoff = min(backoff * 2, WATCH_BACKOFF_MAX)
            except KubeException as e:
                logger.error('{} watch failed: {}'.format(watch.kind, e))
                self.stop_event.wait(backoff)
                backoff = min(backoff * 2, WATCH_BACKOFF_MAX)

    # workers

    def process(self, queue, reconcile, name):
        while True:
            key = queue.get()
            if key is None:
                return
            ctx = Context(self.stop_event)
            try:
                if isinstance(key, tuple):
                    result = reconcile(*key, ctx=ctx)
                else:
                    result = reconcile(key, ctx=ctx)
            except ReconcileCancelled:
                logger.info('{} {}: reconcile cancelled'.format(name, key))
                if not self.stop_event.is_set():
                    queue.add_rate_limited(key)
            except Exception:
                delay = queue.add_rate_limited(key)
                logger.exception('{} {}: reconcile failed, retrying in {}s'.format(name, key, delay))
            else:
                queue.forget(key)
                if result.requeue_after:
                    queue.add_after(key, result.requeue_after)
            finally:
                queue.done(key)

    def start(self):
        for watch in self.watches():
            self.threads.append(threading.Thread(
                target=self.run_watch, args=(watch, ), name='watch-' + watch.kind, daemon=True))
        self.threads.append(threading.Thread(
            target=self.process, name='gateway-worker', daemon=True,
            args=(self.gateway_queue, self.gateway_reconciler.reconcile, 'gateway')))
        self.threads.append(threading.Thread(
            target=self.process, name='gatewayclass-worker', daemon=True,
            args=(self.class_queue, self.class_reconciler.reconcile, 'gatewayclass')))
        for thread in self.threads:
            thread.start()

    def stop(self):
        """Cancel the in-flight reconcile and stop handing out keys."""
        self.stop_event.set()
        self.gateway_queue.shut_down()
        self.class_queue.shut_down()

    def run(self):
        self.start()
        while not self.stop_event.wait(1):
            pass
        for thread in self.threads:
            if thread.name.endswith('worker'):
                thread.join(timeout=30)
        logger.info('controller stopped')
