from django.conf import settings

from kube import KubeException
from gateway.exceptions import ValidationError, REASON_INVALID_TLS
from gateway.helpers import join_errors, validate_https_listener
from gateway.types import PROTOCOL_HTTPS, SecretRef, TLSConfigInfo


def certificate_secret_ref(listener):
    """The first certificateRef of a listener that names a core Secret."""
    for ref in (listener.get('tls') or {}).get('certificateRefs') or []:
        if ref.get('kind', 'Secret') in ('', 'Secret') and not ref.get('group'):
            return ref
    return None


def build_tls_info(kube, gateway, ctx=None):
    """
    Map every HTTPS hostname of a Gateway to its certificate source.

    Listener problems are collected and reported together, while a Secret that
    cannot be read aborts at once.
    """
    gateway_namespace = gateway['metadata'].get('namespace', '')
    result, errors = {}, []
    for index, listener in enumerate(gateway['spec'].get('listeners') or []):
        if listener.get('protocol') != PROTOCOL_HTTPS:
            continue
        error = validate_https_listener(listener)
        if error is not None:
            errors.append('listener[{}]: {}'.format(index, error))
            continue

        hostname = listener['hostname']
        options = listener['tls'].get('options') or {}
        if options.get(settings.TLS_EXTERNAL_ID_KEY):
            result[hostname] = TLSConfigInfo(external_id=options[settings.TLS_EXTERNAL_ID_KEY])
            continue

        ref = certificate_secret_ref(listener)
        if ref is None or not ref.get('name'):
            errors.append('listener[{}]: no valid refs found'.format(index))
            continue

        namespace = ref.get('namespace') or gateway_namespace
        try:
            secret = kube.secrets.get(namespace, ref['name'], ctx=ctx).json()
        except KubeException as e:
            raise ValidationError("can't get secret {}/{}: {}".format(
                namespace, ref['name'], e), REASON_INVALID_TLS) from e
        result[hostname] = TLSConfigInfo(secret=SecretRef(
            name=ref['name'],
            namespace=namespace,
            uid=secret['metadata'].get('uid', ''),
            data={key: kube.secrets.decode(secret, key) for key in (secret.get('data') or {})},
        ))

    if errors:
        raise ValidationError(
            "validation errors:\n{}".format(join_errors(errors)), REASON_INVALID_TLS)
    return result
