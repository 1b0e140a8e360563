"""
Builds the canonical GatewayInfo of a Gateway from the routes, services, nodes
and namespaces of the cluster. The build is all-or-nothing: the first problem
found invalidates the topology of the whole Gateway.
"""
import logging

from kube import KubeException
from gateway.exceptions import ValidationError
from gateway.helpers import (
    allowed_routes_policy, host_matches, is_route_attached_to_gateway,
    is_route_namespace_allowed, refers_to_gateway,
)
from gateway.types import (
    PROTOCOL_HTTP, PROTOCOL_HTTPS, GatewayInfo, ListenerInfo, PathInfo, VHostInfo
)

logger = logging.getLogger(__name__)

PATH_MATCH_PREFIX = 'PathPrefix'


def get_node_ips(kube, ctx=None):
    """One address per node, ExternalIP when the node has one, else InternalIP."""
    node_ips = []
    for node in kube.nodes.get(ctx=ctx).json()['items']:
        addresses = (node.get('status') or {}).get('addresses') or []
        for address_type in ('ExternalIP', 'InternalIP'):
            found = [a['address'] for a in addresses if a.get('type') == address_type]
            if found:
                node_ips.append(found[0])
                break
    return node_ips


def get_listeners(gateway):
    listeners, seen = [], set()
    for listener in gateway['spec'].get('listeners') or []:
        if listener['name'] in seen:
            raise ValidationError('duplicate listener name: "{}"'.format(listener['name']))
        seen.add(listener['name'])
        allowed_from, selector = allowed_routes_policy(listener)
        listeners.append(ListenerInfo(
            name=listener['name'],
            hostname=listener.get('hostname') or '',
            protocol=listener.get('protocol', PROTOCOL_HTTP),
            port=listener.get('port', 0),
            allowed_namespaces=allowed_from,
            selector=selector,
        ))
    return listeners


def route_hostnames(route):
    key = route_key(route)
    hostnames = route['spec'].get('hostnames') or []
    if not hostnames:
        raise ValidationError(
            "HTTPRoute {}: Hostname must be specified "
            "(no wildcards, no empty values supported)".format(key))
    for host in hostnames:
        if not host or '*' in host:
            raise ValidationError(
                'HTTPRoute {}: Invalid hostname "{}" '
                '(must be concrete, no wildcards, no empty)'.format(key, host))
    return hostnames


def route_key(route):
    return '{}/{}'.format(route['metadata'].get('namespace', ''), route['metadata']['name'])


def route_section_names(route, gateway):
    """sectionName restrictions of the parentRefs that point at this Gateway."""
    gateway_namespace = gateway['metadata'].get('namespace', '')
    route_namespace = route['metadata'].get('namespace', '')
    names = set()
    for parent_ref in route['spec'].get('parentRefs') or []:
        if not refers_to_gateway(parent_ref) or parent_ref.get('name') != gateway['metadata']['name']:
            continue
        if (parent_ref.get('namespace') or route_namespace) != gateway_namespace:
            continue
        if parent_ref.get('sectionName'):
            names.add(parent_ref['sectionName'])
    return names


def select_ports(listeners):
    """SSL flag and the ports of the winning protocol, HTTPS wins over HTTP."""
    ssl = any(listener.protocol == PROTOCOL_HTTPS for listener in listeners)
    wanted = PROTOCOL_HTTPS if ssl else PROTOCOL_HTTP
    ports = []
    for listener in listeners:
        if listener.protocol == wanted and listener.port not in ports:
            ports.append(listener.port)
    return ssl, ports


def resolve_node_port(service, wanted_port):
    name = service['metadata']['name']
    ports = service.get('spec', {}).get('ports') or []
    if wanted_port is None and ports:
        wanted_port = ports[0].get('port')
    for port in ports:
        if port.get('port') == wanted_port:
            if not port.get('nodePort'):
                raise ValidationError(
                    "service {} has no NodePort (only NodePort/LoadBalancer supported)".format(name))
            return port['nodePort']
    raise ValidationError("service {}: port {} not found".format(name, wanted_port))


def rule_paths(route, rule):
    matches = rule.get('matches') or []
    if not matches:
        return ['/']
    paths = []
    for match in matches:
        path = match.get('path') or {}
        if path.get('value') is None:
            continue
        match_type = path.get('type') or PATH_MATCH_PREFIX
        if match_type != PATH_MATCH_PREFIX:
            logger.warning("HTTPRoute {}: unsupported match type {}, "
                           "only PathPrefix is supported, skipping".format(route_key(route), match_type))
            continue
        paths.append(path['value'])
    return paths


class TopologyBuilder(object):
    """Collects everything the load balancer needs to know about one Gateway."""

    def __init__(self, kube, ctx=None):
        self.kube = kube
        self.ctx = ctx
        self._namespace_labels = {}

    def _check(self):
        if self.ctx is not None:
            self.ctx.check()

    def namespace_labels(self, namespace):
        if namespace not in self._namespace_labels:
            try:
                data = self.kube.ns.get(namespace, ctx=self.ctx).json()
            except KubeException as e:
                raise ValidationError(
                    'cannot get labels for namespace "{}": {}'.format(namespace, e)) from e
            self._namespace_labels[namespace] = data['metadata'].get('labels') or {}
        return self._namespace_labels[namespace]

    def get_service(self, namespace, name):
        try:
            return self.kube.svc.get(namespace, name, ctx=self.ctx).json()
        except KubeException as e:
            raise ValidationError(
                "failed to get service {}/{}: {}".format(namespace, name, e)) from e

    def build(self, gateway):
        self._check()
        try:
            node_ips = get_node_ips(self.kube, self.ctx)
        except KubeException as e:
            raise ValidationError("failed to get nodes IPs: {}".format(e)) from e
        listeners = get_listeners(gateway)

        self._check()
        try:
            routes = self.kube.httproutes.get(ctx=self.ctx).json()['items']
        except KubeException as e:
            raise ValidationError("failed to list HTTPRoutes: {}".format(e)) from e

        vhosts, owners = {}, {}
        for route in routes:
            if not is_route_attached_to_gateway(route, gateway):
                continue
            self._check()
            self.add_route(gateway, route, listeners, node_ips, vhosts, owners)

        metadata = gateway['metadata']
        return GatewayInfo(
            uid=metadata.get('uid', ''),
            name=metadata['name'],
            namespace=metadata.get('namespace', ''),
            vhosts=vhosts,
        )

    def add_route(self, gateway, route, listeners, node_ips, vhosts, owners):
        hostnames = route_hostnames(route)
        key = route_key(route)
        section_names = route_section_names(route, gateway)
        route_namespace = route['metadata'].get('namespace', '')
        labels = self.namespace_labels(route_namespace)
        gateway_namespace = gateway['metadata'].get('namespace', '')

        for hostname in hostnames:
            previous = owners.get(hostname)
            if previous is not None and previous != key:
                raise ValidationError('domain "{}" used in several HTTPRoute: "{}" and "{}"'.format(
                    hostname, previous, key))
            owners[hostname] = key

            matched = [
                listener for listener in listeners
                if (not section_names or listener.name in section_names) and
                is_route_namespace_allowed(listener, gateway_namespace, route_namespace, labels) and
                host_matches(listener.hostname, hostname)
            ]
            if not matched:
                continue

            ssl, ports = select_ports(matched)
            vhost = vhosts.get(hostname)
            if vhost is None:
                vhost = vhosts[hostname] = VHostInfo(host=hostname, ssl=ssl, ports=ports)
            elif ssl and not vhost.ssl:
                # an HTTPS claim replaces the HTTP ports gathered so far
                vhost.ssl, vhost.ports = True, ports
            elif ssl == vhost.ssl:
                vhost.add_ports(ports)

            for path in self.route_paths(route, node_ips):
                vhost.add_path(path)

    def route_paths(self, route, node_ips):
        route_namespace = route['metadata'].get('namespace', '')
        paths = []
        for rule in route['spec'].get('rules') or []:
            backend_refs = rule.get('backendRefs') or []
            if not backend_refs:
                continue
            if rule.get('filters'):
                logger.warning("HTTPRoute {}: filters will be ignored".format(route_key(route)))
            # only the first backend of a rule is served
            backend = backend_refs[0]
            if backend.get('group'):
                raise ValidationError(
                    "non-core backend groups not supported: {}".format(backend['group']))
            if backend.get('kind', 'Service') != 'Service':
                raise ValidationError(
                    "backend kind {} not supported, only Service".format(backend['kind']))
            namespace = backend.get('namespace') or route_namespace
            service = self.get_service(namespace, backend['name'])
            node_port = resolve_node_port(service, backend.get('port'))
            for value in rule_paths(route, rule):
                paths.append(PathInfo(
                    path=value,
                    service_name=backend['name'],
                    service_namespace=namespace,
                    node_port=node_port,
                    node_ips=list(node_ips),
                ))
        return paths


def build_gateway_info(kube, gateway, ctx=None):
    return TopologyBuilder(kube, ctx).build(gateway)
