"""
Reverse lookups turning HTTPRoute, Service and Secret events into the keys of
the managed Gateways they affect. They only read cluster state.
"""
import logging

from kube import KubeException, KubeHTTPException
from gateway.helpers import parent_gateway_keys

logger = logging.getLogger(__name__)


class GatewayMapper(object):

    def __init__(self, kube, ownership):
        self.kube = kube
        self.ownership = ownership

    def managed_gateway_key(self, namespace, name):
        try:
            gateway = self.kube.gateways.get(namespace, name).json()
        except KubeHTTPException as e:
            if not e.not_found:
                logger.debug('parent gateway {}/{} not readable: {}'.format(namespace, name, e))
            return None
        except KubeException as e:
            logger.debug('parent gateway {}/{} not readable: {}'.format(namespace, name, e))
            return None
        if not self.ownership.is_managed_quiet(gateway):
            logger.debug('gateway {}/{} is not managed, skipping'.format(namespace, name))
            return None
        return (namespace, name)

    def find_gateways_for_httproute(self, route):
        keys = []
        for namespace, name in parent_gateway_keys(route):
            key = self.managed_gateway_key(namespace, name)
            if key is not None:
                logger.debug('HTTPRoute {}/{} change triggers gateway {}/{}'.format(
                    route['metadata'].get('namespace'), route['metadata']['name'], *key))
                keys.append(key)
        return keys

    def find_gateways_for_service(self, service):
        try:
            routes = self.kube.httproutes.get().json()['items']
        except KubeException as e:
            logger.error('failed to list HTTPRoutes for service {}/{}: {}'.format(
                service['metadata'].get('namespace'), service['metadata']['name'], e))
            return []

        keys, seen = [], set()
        for route in routes:
            if not route_references_service(route, service):
                continue
            for parent in parent_gateway_keys(route):
                if parent in seen:
                    continue
                key = self.managed_gateway_key(*parent)
                if key is not None:
                    seen.add(parent)
                    keys.append(key)
        return keys

    def find_gateways_for_secret(self, secret):
        namespace = secret['metadata'].get('namespace')
        try:
            # certificateRefs may point across namespaces
            gateways = self.kube.gateways.get().json()['items']
        except KubeException as e:
            logger.error('failed to list gateways for secret {}/{}: {}'.format(
                namespace, secret['metadata']['name'], e))
            return []

        keys = []
        for gateway in gateways:
            if not gateway_references_secret(gateway, secret):
                continue
            if not self.ownership.is_managed_quiet(gateway):
                continue
            keys.append((gateway['metadata'].get('namespace'), gateway['metadata']['name']))
        return keys


def route_references_service(route, service):
    route_namespace = route['metadata'].get('namespace')
    for rule in route.get('spec', {}).get('rules') or []:
        for backend in rule.get('backendRefs') or []:
            if backend.get('group'):
                continue
            if backend.get('name') != service['metadata']['name']:
                continue
            if (backend.get('namespace') or route_namespace) == service['metadata'].get('namespace'):
                return True
    return False


def gateway_references_secret(gateway, secret):
    gateway_namespace = gateway['metadata'].get('namespace')
    for listener in gateway.get('spec', {}).get('listeners') or []:
        for ref in (listener.get('tls') or {}).get('certificateRefs') or []:
            if ref.get('name') != secret['metadata']['name']:
                continue
            if (ref.get('namespace') or gateway_namespace) == secret['metadata'].get('namespace'):
                return True
    return False
