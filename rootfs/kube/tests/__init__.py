import requests_mock
from django.conf import settings
from django.test import SimpleTestCase

from kube import KubeHTTPClient
from kube.mock import MockKubeAPI


class TestCase(SimpleTestCase):
    """Serves an in-memory Kubernetes API to every request of the test."""

    def setUp(self):
        super().setUp()
        self.api = MockKubeAPI(settings.SCHEDULER_URL)
        self.mocker = requests_mock.Mocker()
        self.mocker.start()
        self.addCleanup(self.mocker.stop)
        self.api.register(self.mocker)
        self.kube = KubeHTTPClient(
            settings.SCHEDULER_URL, settings.K8S_API_VERIFY_TLS, settings.K8S_API_TIMEOUT)
