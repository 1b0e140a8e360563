"""
Client for the servers.com public API, limited to L7 load balancers and custom
SSL certificates.
"""
import logging
from urllib.parse import urljoin

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from requests_toolbelt import user_agent

from controller import __version__ as controller_version
from provider.exceptions import ProviderException, ProviderHTTPException, ProviderNotFound

logger = logging.getLogger(__name__)

PER_PAGE = 100


class ProviderAPI(object):

    def __init__(self, url, session, timeout=30):
        self.url = url.rstrip('/') + '/'
        self.session = session
        self.timeout = timeout

    def request(self, method, path, message, ctx=None, **kwargs):
        """
        Send one request and return the decoded body.

        A ctx, when given, is checked for cancellation first and bounds the timeout.
        """
        if ctx is not None:
            ctx.check()
            kwargs["timeout"] = ctx.timeout(self.timeout)
        else:
            kwargs["timeout"] = self.timeout
        url = urljoin(self.url, path.lstrip('/'))
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as err:
            msg = "There was a problem calling the provider API. URL: {}".format(url)
            logger.error(msg)
            raise ProviderException(msg) from err

        if response.status_code == 404:
            raise ProviderNotFound(response, message)
        if not 200 <= response.status_code <= 299:
            raise ProviderHTTPException(response, message)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def collect(self, path, params, message, ctx=None):
        """Read every page of a collection."""
        items, page = [], 1
        while True:
            query = dict(params, page=page, per_page=PER_PAGE)
            batch = self.request('get', path, message, ctx=ctx, params=query) or []
            items.extend(batch)
            if len(batch) < PER_PAGE:
                return items
            page += 1


class LoadBalancers(ProviderAPI):

    def list_l7(self, label_selector, ctx=None):
        return self.collect(
            '/load_balancers',
            {'type': 'l7', 'label_selector': label_selector},
            'list L7 load balancers', ctx=ctx,
        )

    def create_l7(self, data, ctx=None):
        return self.request(
            'post', '/load_balancers/l7', 'create L7 load balancer', ctx=ctx, json=data)

    def update_l7(self, lb_id, data, ctx=None):
        return self.request(
            'put', '/load_balancers/l7/{}'.format(lb_id),
            'update L7 load balancer {}'.format(lb_id), ctx=ctx, json=data)

    def delete_l7(self, lb_id, ctx=None):
        return self.request(
            'delete', '/load_balancers/l7/{}'.format(lb_id),
            'delete L7 load balancer {}'.format(lb_id), ctx=ctx)


class SSLCertificates(ProviderAPI):

    def list_custom(self, label_selector, ctx=None):
        return self.collect(
            '/ssl_certificates',
            {'type': 'custom', 'label_selector': label_selector},
            'list custom SSL certificates', ctx=ctx,
        )

    def get_custom(self, cert_id, ctx=None):
        return self.request(
            'get', '/ssl_certificates/custom/{}'.format(cert_id),
            'get custom SSL certificate {}'.format(cert_id), ctx=ctx)

    def create_custom(self, data, ctx=None):
        return self.request(
            'post', '/ssl_certificates/custom', 'create custom SSL certificate',
            ctx=ctx, json=data)

    def update_custom(self, cert_id, data, ctx=None):
        return self.request(
            'put', '/ssl_certificates/custom/{}'.format(cert_id),
            'update custom SSL certificate {}'.format(cert_id), ctx=ctx, json=data)


class Client(object):

    def __init__(self, token, url, timeout=30):
        self.session = requests.Session()
        self.session.headers = {
            'Authorization': 'Bearer {}'.format(token),
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': user_agent('Gateway Controller', controller_version),
        }
        self.load_balancers = LoadBalancers(url, self.session, timeout)
        self.ssl_certificates = SSLCertificates(url, self.session, timeout)

    def setup_user_agent(self, agent):
        self.session.headers['User-Agent'] = agent


def new_client():
    """Create a provider client from settings, SC_ACCESS_TOKEN is mandatory."""
    if not settings.SC_ACCESS_TOKEN:
        raise ImproperlyConfigured("SC_ACCESS_TOKEN env is empty, can't create SC client")
    return Client(settings.SC_ACCESS_TOKEN, settings.SC_API_URL,
                  timeout=settings.PROVIDER_API_TIMEOUT)


__all__ = ('Client', 'new_client', 'ProviderException', 'ProviderHTTPException', 'ProviderNotFound')
