"""
Unit tests for the servers.com client.

Run the tests with './manage.py test provider'
"""
import requests
import requests_mock
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from gateway.context import Context
from gateway.exceptions import ReconcileCancelled
from provider import Client, new_client, ProviderException, ProviderHTTPException, ProviderNotFound

API = 'http://test-provider.example.com/v1'


@requests_mock.Mocker()
class ClientTest(SimpleTestCase):

    def setUp(self):
        self.client = Client('secret-token', API, timeout=5)

    def test_headers(self, mock):
        mock.get(API + '/ssl_certificates/custom/c1', json={'id': 'c1'})
        self.client.setup_user_agent('example.com/gateway-controller/0.1.0')
        self.assertEqual(self.client.ssl_certificates.get_custom('c1'), {'id': 'c1'})
        headers = mock.last_request.headers
        self.assertEqual(headers['Authorization'], 'Bearer secret-token')
        self.assertEqual(headers['User-Agent'], 'example.com/gateway-controller/0.1.0')

    def test_collection_pagination(self, mock):
        first = [{'id': str(i)} for i in range(100)]
        mock.get(API + '/load_balancers', [{'json': first}, {'json': [{'id': 'last'}]}])
        items = self.client.load_balancers.list_l7('example.com/api-gateway-id=uid')
        self.assertEqual(len(items), 101)
        self.assertEqual(mock.call_count, 2)
        query = mock.request_history[1].qs
        self.assertEqual(query['page'], ['2'])
        self.assertEqual(query['per_page'], ['100'])
        self.assertEqual(query['type'], ['l7'])
        self.assertEqual(query['label_selector'], ['example.com/api-gateway-id=uid'])

    def test_create_and_update(self, mock):
        mock.post(API + '/load_balancers/l7', json={'id': 'lb1', 'status': 'pending'}, status_code=201)
        mock.put(API + '/load_balancers/l7/lb1', json={'id': 'lb1', 'status': 'active'})
        self.assertEqual(self.client.load_balancers.create_l7({'name': 'gw-a'})['id'], 'lb1')
        self.assertEqual(mock.last_request.json(), {'name': 'gw-a'})
        self.assertEqual(self.client.load_balancers.update_l7('lb1', {'name': 'gw-a'})['status'], 'active')

    def test_delete_no_content(self, mock):
        mock.delete(API + '/load_balancers/l7/lb1', status_code=204)
        self.assertIsNone(self.client.load_balancers.delete_l7('lb1'))

    def test_not_found(self, mock):
        mock.get(API + '/ssl_certificates/custom/nope', status_code=404, json={'message': 'Not found'})
        with self.assertRaises(ProviderNotFound) as context:
            self.client.ssl_certificates.get_custom('nope')
        self.assertIn('failed to get custom SSL certificate nope: 404 Not found', str(context.exception))

    def test_http_error(self, mock):
        mock.post(API + '/ssl_certificates/custom', status_code=422, json={'message': 'invalid key'})
        with self.assertRaises(ProviderHTTPException) as context:
            self.client.ssl_certificates.create_custom({'name': 'x'})
        self.assertNotIsInstance(context.exception, ProviderNotFound)
        self.assertIn('invalid key', str(context.exception))

    def test_connection_error(self, mock):
        mock.get(API + '/load_balancers', exc=requests.exceptions.ConnectTimeout)
        with self.assertRaises(ProviderException):
            self.client.load_balancers.list_l7('a=b')

    def test_cancelled_context(self, mock):
        ctx = Context()
        ctx.cancel()
        with self.assertRaises(ReconcileCancelled):
            self.client.load_balancers.list_l7('a=b', ctx=ctx)
        self.assertFalse(mock.called)

    def test_new_client(self, mock):
        self.assertEqual(new_client().load_balancers.url, settings.SC_API_URL + '/')
        with override_settings(SC_ACCESS_TOKEN=''):
            with self.assertRaises(ImproperlyConfigured):
                new_client()
