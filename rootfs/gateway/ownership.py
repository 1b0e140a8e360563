import logging

from kube import KubeException, KubeHTTPException

logger = logging.getLogger(__name__)


class OwnershipFilter(object):
    """Decides whether a Gateway belongs to this controller through its GatewayClass."""

    def __init__(self, kube, controller_name, class_name=''):
        self.kube = kube
        self.controller_name = controller_name
        self.class_name = class_name

    def owns_class(self, gateway_class):
        if gateway_class.get('spec', {}).get('controllerName') != self.controller_name:
            return False
        if self.class_name and gateway_class['metadata']['name'] != self.class_name:
            return False
        return True

    def is_managed(self, gateway, ctx=None):
        """
        A missing GatewayClass means unmanaged, other API failures are raised.
        """
        class_name = gateway.get('spec', {}).get('gatewayClassName', '')
        if not class_name:
            return False
        try:
            gateway_class = self.kube.gatewayclass.get(class_name, ctx=ctx).json()
        except KubeHTTPException as e:
            if e.not_found:
                return False
            raise
        return self.owns_class(gateway_class)

    def is_managed_quiet(self, gateway):
        """is_managed for watch predicates and mappers, where errors count as unmanaged."""
        try:
            return self.is_managed(gateway)
        except KubeException as e:
            logger.debug('failed to check if gateway {}/{} is managed: {}'.format(
                gateway['metadata'].get('namespace'), gateway['metadata']['name'], e))
            return False
