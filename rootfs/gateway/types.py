"""
Canonical topology of a Gateway, rebuilt from cluster state on every pass.
"""
from dataclasses import dataclass, field

PROTOCOL_HTTP = 'HTTP'
PROTOCOL_HTTPS = 'HTTPS'

NAMESPACES_FROM_ALL = 'All'
NAMESPACES_FROM_SAME = 'Same'
NAMESPACES_FROM_SELECTOR = 'Selector'


@dataclass
class ListenerInfo:
    name: str
    hostname: str = ''
    protocol: str = PROTOCOL_HTTP
    port: int = 0
    allowed_namespaces: str = NAMESPACES_FROM_SAME
    selector: dict[str, str] | None = None


@dataclass
class PathInfo:
    path: str
    service_name: str
    service_namespace: str
    node_port: int
    node_ips: list[str] = field(default_factory=list)


@dataclass
class VHostInfo:
    host: str
    ssl: bool = False
    ports: list[int] = field(default_factory=list)
    paths: list[PathInfo] = field(default_factory=list)

    def add_ports(self, ports):
        for port in ports:
            if port not in self.ports:
                self.ports.append(port)

    def add_path(self, path):
        if path not in self.paths:
            self.paths.append(path)


@dataclass
class GatewayInfo:
    uid: str
    name: str
    namespace: str
    vhosts: dict[str, VHostInfo] = field(default_factory=dict)


@dataclass
class SecretRef:
    name: str
    namespace: str
    uid: str = ''
    data: dict[str, bytes] = field(default_factory=dict)


@dataclass
class TLSConfigInfo:
    """Exactly one of external_id or secret is set."""
    external_id: str = ''
    secret: SecretRef | None = None


@dataclass
class LBResult:
    """Outcome of a load balancer sync, status is the provider's."""
    id: str = ''
    status: str = ''
    external_addresses: list[str] = field(default_factory=list)
