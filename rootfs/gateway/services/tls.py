"""
Keeps the custom SSL certificates of the provider in step with the TLS Secrets
referenced by Gateway listeners. Certificates are found by the UID label of
their Secret and compared by the sha1 fingerprint of the leaf certificate.
"""
import logging
import re

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from django.conf import settings

from provider import ProviderException, ProviderNotFound
from gateway.exceptions import FatalInconsistency, SyncError, REASON_SYNC_TLS_FAILED
from gateway.services import BaseTLSManager

logger = logging.getLogger(__name__)

TLS_CERT_KEY = 'tls.crt'
TLS_PRIVATE_KEY_KEY = 'tls.key'

PEM_BLOCK_REGEX = re.compile(
    r'^-----BEGIN (?P<type>[^-]+)-----\n(?P<body>.*?)\n?-----END (?P=type)-----', re.DOTALL)


class InvalidCertificate(ValueError):
    pass


def _text(value):
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value or ''


def strip_spaces(pem):
    """Drop blank lines and surrounding whitespace of every line."""
    lines = (line.strip() for line in _text(pem).split('\n'))
    return '\n'.join(line for line in lines if line)


def split_certs(pem):
    """
    Split a PEM bundle into the leaf block and the rest of the chain.

    Text outside of BEGIN/END markers is dropped, an empty chain is None.
    """
    primary, chain = [], []
    started, blocks = False, 0
    for line in strip_spaces(pem).split('\n'):
        if line.startswith('-----BEGIN'):
            started = True
        if not started:
            continue
        (primary if blocks == 0 else chain).append(line)
        if line.startswith('-----END'):
            started = False
            blocks += 1
    if not primary:
        return None, None
    return '\n'.join(primary), '\n'.join(chain) or None


def load_certificate(pem):
    """Parse the first PEM block, which must be an X.509 CERTIFICATE."""
    match = PEM_BLOCK_REGEX.match(strip_spaces(pem))
    if match is None:
        raise InvalidCertificate("can't find certificate, please verify your tls.crt section")
    if match.group('type') != 'CERTIFICATE':
        raise InvalidCertificate(
            "can't find certificate, expected CERTIFICATE, got: {}".format(match.group('type')))
    try:
        return x509.load_pem_x509_certificate(match.group(0).encode())
    except ValueError as e:
        raise InvalidCertificate("can't parse certificate: {}".format(e)) from e


def validate_certificate(pem):
    primary, _ = split_certs(pem)
    if primary is None:
        raise InvalidCertificate("can't find certificate, please verify your tls.crt section")
    cert = load_certificate(primary)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        dns_names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        dns_names = []
    if not dns_names:
        raise InvalidCertificate("can't find dns names for certificate")
    return cert


def pem_fingerprint(pem):
    """Lowercase hex sha1 of the DER bytes of the leaf certificate, '' when there is none."""
    try:
        cert = load_certificate(pem)
    except InvalidCertificate:
        return ''
    return cert.fingerprint(hashes.SHA1()).hex()


class TLSManager(BaseTLSManager):

    def __init__(self, client):
        self.certificates = client.ssl_certificates

    def ensure_tls(self, tls_info, ctx=None):
        """
        Return hostname to provider certificate id for every entry of tls_info.

        The first failing hostname aborts the call; certificates already created or
        updated for other hostnames in the same call stay in place.
        """
        result = {}
        for host, info in tls_info.items():
            if info.external_id:
                result[host] = self.get_by_id(host, info.external_id, ctx)
            else:
                result[host] = self.ensure_secret_certificate(host, info.secret, ctx)
        return result

    def get_by_id(self, host, cert_id, ctx=None):
        try:
            cert = self.certificates.get_custom(cert_id, ctx=ctx)
        except ProviderNotFound as e:
            raise SyncError('provider certificate id "{}" for host "{}" not found: {}'.format(
                cert_id, host, e), REASON_SYNC_TLS_FAILED) from e
        except ProviderException as e:
            raise SyncError('provider certificate id "{}" for host "{}" failed: {}'.format(
                cert_id, host, e), REASON_SYNC_TLS_FAILED) from e
        return cert['id']

    def ensure_secret_certificate(self, host, secret, ctx=None):
        if secret is None:
            raise SyncError('no secret or external id for host "{}"'.format(host),
                            REASON_SYNC_TLS_FAILED)
        cert_pem = secret.data.get(TLS_CERT_KEY)
        if cert_pem is None:
            raise SyncError('secret for host "{}" has no {}'.format(host, TLS_CERT_KEY),
                            REASON_SYNC_TLS_FAILED)
        key_pem = secret.data.get(TLS_PRIVATE_KEY_KEY)
        if key_pem is None:
            raise SyncError('secret for host "{}" has no {}'.format(host, TLS_PRIVATE_KEY_KEY),
                            REASON_SYNC_TLS_FAILED)
        try:
            validate_certificate(cert_pem)
        except InvalidCertificate as e:
            raise SyncError('invalid certificate for host "{}": {}'.format(host, e),
                            REASON_SYNC_TLS_FAILED) from e

        primary, chain = split_certs(cert_pem)
        fingerprint = pem_fingerprint(primary)
        try:
            return self.ensure_certificate(fingerprint, secret.uid, primary, _text(key_pem), chain, ctx)
        except FatalInconsistency as e:
            raise FatalInconsistency('tls for host "{}" failed: {}'.format(host, e),
                                     REASON_SYNC_TLS_FAILED) from e
        except ProviderException as e:
            raise SyncError('tls for host "{}" failed: {}'.format(host, e),
                            REASON_SYNC_TLS_FAILED) from e

    def find_certificates(self, secret_uid, ctx=None):
        label_selector = '{}={}'.format(settings.SECRET_LABEL_ID, secret_uid)
        try:
            return self.certificates.list_custom(label_selector, ctx=ctx)
        except ProviderNotFound:
            return []

    def ensure_certificate(self, fingerprint, secret_uid, cert, key, chain, ctx=None):
        found = self.find_certificates(secret_uid, ctx)
        for existing in found:
            if existing.get('sha1_fingerprint') == fingerprint:
                return existing['id']
        if len(found) > 1:
            raise FatalInconsistency('found {} certificates labelled {}={}'.format(
                len(found), settings.SECRET_LABEL_ID, secret_uid))

        data = {'public_key': cert, 'private_key': key}
        if chain:
            data['chain_key'] = chain
        if found:
            logger.info('updating certificate {} of secret {}'.format(found[0]['id'], secret_uid))
            return self.certificates.update_custom(found[0]['id'], data, ctx=ctx)['id']

        logger.info('creating certificate for secret {}'.format(secret_uid))
        data['name'] = 'gw-secret-{}'.format(secret_uid)
        data['labels'] = {settings.SECRET_LABEL_ID: secret_uid}
        return self.certificates.create_custom(data, ctx=ctx)['id']
