import base64
import datetime
import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from django.conf import settings
from django.test.runner import DiscoverRunner

from gateway.services import BaseLBManager, BaseTLSManager
from gateway.types import LBResult
from kube.tests import TestCase  # noqa

CONTROLLER_NAME = settings.GATEWAY_CONTROLLER_NAME


class SilentDjangoTestSuiteRunner(DiscoverRunner):
    """Prevents controller log messages from cluttering the console during tests."""

    def run_tests(self, test_labels, **kwargs):
        """Run tests with all but critical log messages disabled."""
        # hide any log messages less than critical
        logging.disable(logging.ERROR)
        return super(SilentDjangoTestSuiteRunner, self).run_tests(
            test_labels, **kwargs)


def generate_certificate(dns_names=('example.com', ), common_name='example.com'):
    """A self-signed certificate and its key, both PEM encoded."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = x509.CertificateBuilder().subject_name(name).issuer_name(name) \
        .public_key(key.public_key()).serial_number(x509.random_serial_number()) \
        .not_valid_before(now - datetime.timedelta(days=1)) \
        .not_valid_after(now + datetime.timedelta(days=30))
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]), critical=False)
    cert = builder.sign(key, hashes.SHA256())
    key_pem = key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption())
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


def gateway_class(name='sc', controller_name=CONTROLLER_NAME):
    return {
        'kind': 'GatewayClass',
        'metadata': {'name': name},
        'spec': {'controllerName': controller_name},
    }


def listener(name, protocol='HTTP', port=80, hostname=None, **kwargs):
    data = {'name': name, 'protocol': protocol, 'port': port}
    if hostname is not None:
        data['hostname'] = hostname
    data.update(kwargs)
    return data


def https_listener(name, hostname, port=443, secret=None, external_id=None, **kwargs):
    tls = {'mode': 'Terminate'}
    if secret is not None:
        tls['certificateRefs'] = [{'kind': 'Secret', 'name': secret}]
    if external_id is not None:
        tls['options'] = {settings.TLS_EXTERNAL_ID_KEY: external_id}
    return listener(name, 'HTTPS', port, hostname, tls=tls, **kwargs)


def gateway(name='gw', namespace='web', listeners=None, class_name='sc', uid='1c2d3e4f-aaaa-bbbb-cccc-0123456789ab'):
    return {
        'kind': 'Gateway',
        'metadata': {'name': name, 'namespace': namespace, 'uid': uid},
        'spec': {
            'gatewayClassName': class_name,
            'listeners': listeners if listeners is not None else [listener('http')],
        },
    }


def httproute(name, namespace='web', hostnames=('example.com', ), gateway='gw',
              gateway_namespace=None, service='app', port=None, rules=None, section_name=None):
    parent = {'name': gateway}
    if gateway_namespace is not None:
        parent['namespace'] = gateway_namespace
    if section_name is not None:
        parent['sectionName'] = section_name
    backend = {'name': service}
    if port is not None:
        backend['port'] = port
    return {
        'kind': 'HTTPRoute',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {
            'parentRefs': [parent],
            'hostnames': list(hostnames),
            'rules': rules if rules is not None else [{'backendRefs': [backend]}],
        },
    }


def service(name='app', namespace='web', ports=((80, 30080), )):
    return {
        'kind': 'Service',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {
            'type': 'NodePort',
            'ports': [{'port': port, 'nodePort': node_port} for port, node_port in ports],
        },
    }


def node(name, external=None, internal=None):
    addresses = []
    if internal is not None:
        addresses.append({'type': 'InternalIP', 'address': internal})
    if external is not None:
        addresses.append({'type': 'ExternalIP', 'address': external})
    return {'kind': 'Node', 'metadata': {'name': name}, 'status': {'addresses': addresses}}


def namespace(name, labels=None):
    return {'kind': 'Namespace', 'metadata': {'name': name, 'labels': labels or {}}}


def tls_secret(name, namespace='web', cert=None, key=None, uid='5ec7e7-0000'):
    data = {}
    if cert is not None:
        data['tls.crt'] = base64.b64encode(cert).decode()
    if key is not None:
        data['tls.key'] = base64.b64encode(key).decode()
    return {
        'kind': 'Secret',
        'type': 'kubernetes.io/tls',
        'metadata': {'name': name, 'namespace': namespace, 'uid': uid},
        'data': data,
    }


class FakeTLSManager(BaseTLSManager):
    """Resolves external ids to themselves and secrets to cert-<secret name>."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def ensure_tls(self, tls_info, ctx=None):
        self.calls.append(tls_info)
        if self.error is not None:
            raise self.error
        return {
            host: info.external_id or 'cert-{}'.format(info.secret.name)
            for host, info in tls_info.items()
        }


class FakeLBManager(BaseLBManager):
    """Returns the queued statuses one per ensure_lb call."""

    def __init__(self, statuses=('active', ), addresses=('203.0.113.10', ), error=None):
        self.statuses = list(statuses)
        self.addresses = list(addresses)
        self.error = error
        self.ensured = []
        self.deleted = []

    def ensure_lb(self, info, certificates, ctx=None):
        self.ensured.append((info, certificates))
        if self.error is not None:
            raise self.error
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status != 'active':
            return LBResult(status=status)
        return LBResult(id='lb-1', status=status, external_addresses=list(self.addresses))

    def delete_lb(self, label_selector, ctx=None):
        self.deleted.append(label_selector)
