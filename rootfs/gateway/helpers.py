"""
Pure matching and validation helpers shared by the topology builder, the TLS
resolver and the reverse-lookup handlers.
"""
from datetime import datetime, timezone

from kube.resources.gateway import GATEWAY_API_GROUP
from gateway.types import (
    PROTOCOL_HTTPS, NAMESPACES_FROM_ALL, NAMESPACES_FROM_SAME, NAMESPACES_FROM_SELECTOR
)

TLS_MODE_TERMINATE = 'Terminate'
TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


def host_matches(listener_host, route_host):
    """
    Report whether route_host is served by a listener bound to listener_host.

    A wildcard listener host like *.example.com matches any subdomain but not the apex.
    """
    if not listener_host:
        return True
    if listener_host == route_host:
        return True
    if listener_host.startswith('*.') and len(listener_host) > 2:
        return route_host.endswith(listener_host[1:])
    return False


def is_route_namespace_allowed(listener, gateway_namespace, route_namespace, namespace_labels):
    if listener.allowed_namespaces == NAMESPACES_FROM_ALL:
        return True
    if listener.allowed_namespaces == NAMESPACES_FROM_SELECTOR:
        namespace_labels = namespace_labels or {}
        for key, value in (listener.selector or {}).items():
            if namespace_labels.get(key) != value:
                return False
        return True
    # NAMESPACES_FROM_SAME and anything unknown
    return gateway_namespace == route_namespace


def refers_to_gateway(parent_ref):
    kind = parent_ref.get('kind')
    group = parent_ref.get('group')
    if kind and kind != 'Gateway':
        return False
    if group and group != GATEWAY_API_GROUP:
        return False
    return True


def parent_gateway_keys(route):
    """(namespace, name) of every Gateway a route names as its parent."""
    route_namespace = route['metadata'].get('namespace', '')
    keys = []
    for parent_ref in route.get('spec', {}).get('parentRefs') or []:
        if not refers_to_gateway(parent_ref):
            continue
        key = (parent_ref.get('namespace') or route_namespace, parent_ref['name'])
        if key not in keys:
            keys.append(key)
    return keys


def is_route_attached_to_gateway(route, gateway):
    key = (gateway['metadata'].get('namespace', ''), gateway['metadata']['name'])
    return key in parent_gateway_keys(route)


def validate_https_listener(listener):
    """
    Return an error message for an HTTPS listener that cannot terminate TLS, else None.

    Listeners of any other protocol are always valid here.
    """
    if listener.get('protocol') != PROTOCOL_HTTPS:
        return None
    hostname = listener.get('hostname')
    if not hostname:
        return "hostname must be specified for HTTPS protocol"
    tls = listener.get('tls')
    if tls is None:
        return 'hostname="{}": missing TLS config'.format(hostname)
    if tls.get('mode') != TLS_MODE_TERMINATE:
        return "hostname=\"{}\": TLS mode must be 'Terminate'".format(hostname)
    return None


def join_errors(errors):
    return ''.join('- {}\n'.format(error) for error in errors)


def allowed_routes_policy(listener):
    """The namespace policy and label selector of a listener's allowedRoutes."""
    allowed_from, selector = NAMESPACES_FROM_SAME, None
    namespaces = (listener.get('allowedRoutes') or {}).get('namespaces') or {}
    if namespaces.get('from'):
        allowed_from = namespaces['from']
        if allowed_from == NAMESPACES_FROM_SELECTOR:
            selector = (namespaces.get('selector') or {}).get('matchLabels')
    return allowed_from, selector


def now():
    return datetime.now(timezone.utc).strftime(TIME_FORMAT)


def set_status_condition(conditions, condition_type, status, reason, message, generation):
    """
    Insert or update a condition in place, returning True when anything changed.

    lastTransitionTime only moves when the status flips.
    """
    new = {
        'type': condition_type,
        'status': status,
        'reason': reason,
        'message': message,
        'observedGeneration': generation,
    }
    for existing in conditions:
        if existing.get('type') != condition_type:
            continue
        changed = any(existing.get(key) != value for key, value in new.items())
        if existing.get('status') != status or not existing.get('lastTransitionTime'):
            existing['lastTransitionTime'] = now()
        existing.update(new)
        return changed
    new['lastTransitionTime'] = now()
    conditions.append(new)
    return True


def find_status_condition(conditions, condition_type):
    for condition in conditions or []:
        if condition.get('type') == condition_type:
            return condition
    return None
