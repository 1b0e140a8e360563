from unittest import mock

from django.conf import settings
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import override_settings

from gateway.tests import TestCase

COMMAND = 'gateway.management.commands.run_gateway_controller'


class RunGatewayControllerTest(TestCase):

    @override_settings(SC_ACCESS_TOKEN='')
    def test_missing_token(self):
        with self.assertRaisesRegex(CommandError, 'SC_ACCESS_TOKEN'):
            call_command('run_gateway_controller')

    def test_kubernetes_unreachable(self):
        with self.assertRaisesRegex(CommandError, "can't reach kubernetes api"):
            call_command('run_gateway_controller')

    @mock.patch(COMMAND + '.signal')
    @mock.patch(COMMAND + '.ControllerManager')
    def test_wiring(self, manager_class, signal_module):
        self.mocker.get(settings.SCHEDULER_URL + '/version', json={'major': '1', 'minor': '29+'})
        with override_settings(GATEWAY_LABEL_ID=settings.GATEWAY_LABEL_ID):
            call_command(
                'run_gateway_controller', watch_namespace='apps',
                controller_name='example.com/gateway', gateway_class_name='public',
                lb_label_selector='example.com/lb-id')
            self.assertEqual(settings.GATEWAY_LABEL_ID, 'example.com/lb-id')

        args, kwargs = manager_class.call_args
        self.assertEqual(kwargs['namespace'], 'apps')
        ownership = args[4]
        self.assertEqual(ownership.controller_name, 'example.com/gateway')
        self.assertEqual(ownership.class_name, 'public')
        self.assertEqual(args[1].controller_name, 'example.com/gateway')
        manager_class.return_value.run.assert_called_once_with()
        self.assertEqual(signal_module.signal.call_count, 2)
