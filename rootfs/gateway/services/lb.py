"""
Keeps exactly one servers.com L7 load balancer per managed Gateway, found by the
Gateway UID label and replaced wholesale from the built topology.
"""
import logging

from django.conf import settings

from provider import ProviderException, ProviderNotFound
from gateway.exceptions import FatalInconsistency, SyncError
from gateway.services import BaseLBManager
from gateway.types import LBResult

logger = logging.getLogger(__name__)

LB_ACTIVE_STATUS = 'active'


def load_balancer_name(uid):
    return 'gw-{}'.format(('a' + uid).replace('-', '')[:32])


def upstream_zone_id(path):
    return 'upstream-zone-{}-{}'.format(path.service_name, path.node_port)


def translate(info, certificates):
    """
    Build the create input of a load balancer from a Gateway topology.

    Hosts without ports or paths are left out; a Gateway left with no vhost zone
    or no upstream zone is refused.
    """
    upstreams, vhost_zones = {}, []
    for host in sorted(info.vhosts):
        vhost = info.vhosts[host]
        location_zones = []
        for path in vhost.paths:
            zone_id = upstream_zone_id(path)
            location_zones.append({'location': path.path, 'upstream_id': zone_id})
            if zone_id not in upstreams:
                upstreams[zone_id] = {
                    'id': zone_id,
                    'upstreams': [
                        {'ip': ip, 'port': path.node_port, 'weight': 1} for ip in path.node_ips
                    ],
                }
        if not vhost.ports or not location_zones:
            logger.warning('gateway {}/{}: host {} has no ports or paths, skipping'.format(
                info.namespace, info.name, host))
            continue
        vhost_zones.append({
            'id': 'vhost-zone-{}'.format(host),
            'domains': [host],
            'ssl': vhost.ssl,
            'ssl_cert_id': certificates.get(host, '') if vhost.ssl else '',
            'ports': list(vhost.ports),
            'location_zones': location_zones,
        })

    if not vhost_zones or not upstreams:
        raise SyncError("vhost or upstream can't be empty, can't continue")
    return {
        'name': load_balancer_name(info.uid),
        'location_id': settings.SC_LOCATION_ID,
        'vhost_zones': vhost_zones,
        'upstream_zones': list(upstreams.values()),
        'labels': {settings.GATEWAY_LABEL_ID: info.uid},
    }


def to_result(lb):
    return LBResult(
        id=lb.get('id', ''),
        status=lb.get('status', ''),
        external_addresses=list(lb.get('external_addresses') or []),
    )


class LBManager(BaseLBManager):

    def __init__(self, client):
        self.load_balancers = client.load_balancers

    def find(self, label_selector, ctx=None):
        return self.load_balancers.list_l7(label_selector, ctx=ctx)

    def ensure_lb(self, info, certificates, ctx=None):
        label_selector = '{}={}'.format(settings.GATEWAY_LABEL_ID, info.uid)
        try:
            found = self.find(label_selector, ctx)
            if len(found) > 1:
                raise FatalInconsistency('found more than one lb with label {}'.format(label_selector))

            if not found:
                data = translate(info, certificates)
                logger.info('creating load balancer {} for gateway {}/{}'.format(
                    data['name'], info.namespace, info.name))
                return to_result(self.load_balancers.create_l7(data, ctx=ctx))

            lb = found[0]
            if (lb.get('status') or '').lower() != LB_ACTIVE_STATUS:
                # provisioning in progress, nothing is resubmitted until it settles
                return LBResult(status=lb.get('status', ''))

            data = translate(info, certificates)
            update = {
                'name': data['name'],
                'vhost_zones': data['vhost_zones'],
                'upstream_zones': data['upstream_zones'],
                'shared_cluster': True,
            }
            logger.info('updating load balancer {} for gateway {}/{}'.format(
                lb['id'], info.namespace, info.name))
            return to_result(self.load_balancers.update_l7(lb['id'], update, ctx=ctx))
        except ProviderException as e:
            raise SyncError('load balancer sync failed: {}'.format(e)) from e

    def delete_lb(self, label_selector, ctx=None):
        try:
            found = self.find(label_selector, ctx)
            if not found:
                return
            if len(found) > 1:
                raise FatalInconsistency('found more than one lb with label {}'.format(label_selector))
            logger.info('deleting load balancer {}'.format(found[0]['id']))
            self.load_balancers.delete_l7(found[0]['id'], ctx=ctx)
        except ProviderNotFound:
            return
        except ProviderException as e:
            raise SyncError('load balancer delete failed: {}'.format(e)) from e
