import logging
import signal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.core.exceptions import ImproperlyConfigured

from controller import __version__ as controller_version
from kube import KubeHTTPClient, KubeException
from provider import new_client
from gateway.handlers import GatewayMapper
from gateway.manager import ControllerManager
from gateway.ownership import OwnershipFilter
from gateway.reconcilers import GatewayClassReconciler, GatewayReconciler
from gateway.services.lb import LBManager
from gateway.services.tls import TLSManager

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Management command running the Gateway API controller until it is signalled"""

    help = "Converge servers.com L7 load balancers with the Gateway API objects of the cluster."

    def get_version(self):
        return controller_version

    def add_arguments(self, parser):
        parser.add_argument(
            "--watch-namespace", default=settings.GATEWAY_WATCH_NAMESPACE,
            help="only watch objects of this namespace, empty means all namespaces.",
        )
        parser.add_argument(
            "--gateway-class-name", default=settings.GATEWAY_CLASS_NAME,
            help="only manage Gateways of this GatewayClass.",
        )
        parser.add_argument(
            "--controller-name", default=settings.GATEWAY_CONTROLLER_NAME,
            help="the controllerName of the GatewayClasses this controller owns.",
        )
        parser.add_argument(
            "--lb-label-selector", default=settings.GATEWAY_LABEL_ID,
            help="label key correlating load balancers with their Gateway.",
        )

    def handle(self, *args, **options):
        settings.GATEWAY_LABEL_ID = options["lb_label_selector"]
        try:
            client = new_client()
        except ImproperlyConfigured as e:
            raise CommandError(str(e)) from e
        client.setup_user_agent("{}/{}".format(options["controller_name"], controller_version))

        kube = KubeHTTPClient(
            settings.SCHEDULER_URL, settings.K8S_API_VERIFY_TLS, settings.K8S_API_TIMEOUT)
        try:
            logger.info("kubernetes version {}".format(kube.version()))
        except KubeException as e:
            raise CommandError("can't reach kubernetes api: {}".format(e)) from e

        ownership = OwnershipFilter(
            kube, options["controller_name"], options["gateway_class_name"])
        manager = ControllerManager(
            kube,
            GatewayReconciler(kube, ownership, TLSManager(client), LBManager(client),
                              controller_name=options["controller_name"]),
            GatewayClassReconciler(kube, ownership),
            GatewayMapper(kube, ownership),
            ownership,
            namespace=options["watch_namespace"],
        )

        def shutdown(signum, frame):
            logger.info("received signal {}, shutting down".format(signum))
            manager.stop()

        signal.signal(signal.SIGINT, shutdown)
        signal.signal(signal.SIGTERM, shutdown)
        logger.info("starting gateway controller {} as {}".format(
            controller_version, options["controller_name"]))
        manager.run()
