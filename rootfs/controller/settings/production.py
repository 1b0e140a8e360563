"""
Django settings for the gateway controller.
"""
import random
import string
import os.path

from dotenv import load_dotenv


def randstr(k):
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=k))


def int_from_env(name, default):
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


# a .env file in the working directory overrides nothing already set
load_dotenv(os.path.join(os.getcwd(), '.env'))

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# A boolean that turns on/off debug mode.
# https://docs.djangoproject.com/en/1.11/ref/settings/#debug
DEBUG = os.environ.get('GATEWAY_DEBUG', 'false').lower() == "true"

ALLOWED_HOSTS = []

TIME_ZONE = os.environ.get('TZ', 'UTC')

LANGUAGE_CODE = 'en-us'

USE_I18N = False

USE_TZ = True

INSTALLED_APPS = (
    'gateway',
)

# the controller keeps no local state, everything lives in the cluster or at the provider
DATABASES = {}

# Django secret key
SECRET_KEY = os.environ.get('GATEWAY_SECRET_KEY', randstr(64))

# See http://docs.djangoproject.com/en/dev/topics/logging for
# more details on how to customize your logging configuration.
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'root': {'level': 'DEBUG' if DEBUG else 'WARN'},
    'formatters': {
        'verbose': {
            'format': '%(levelname)s %(asctime)s %(module)s %(process)d %(thread)d %(message)s'
        },
        'simple': {
            'format': '%(levelname)s %(asctime)s %(name)s %(message)s'
        },
    },
    'handlers': {
        'null': {
            'level': 'DEBUG',
            'class': 'logging.NullHandler',
        },
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'simple'
        }
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': True,
        },
        'gateway': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
        'kube': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
        'provider': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
    }
}
TEST_RUNNER = 'gateway.tests.SilentDjangoTestSuiteRunner'

# default scheduler settings
SCHEDULER_URL = "https://{}:{}".format(
    os.environ.get('KUBERNETES_SERVICE_HOST', 'kubernetes.default'),
    os.environ.get('KUBERNETES_SERVICE_PORT', '443'),
)

K8S_API_VERIFY_TLS = os.environ.get('K8S_API_VERIFY_TLS', 'true').lower() == "true"

# seconds a single kubernetes api request may take, a pass deadline can shorten it
K8S_API_TIMEOUT = int_from_env('K8S_API_TIMEOUT', 30)

# gateway api settings
GATEWAY_DOMAIN = 'k8s.srvrscloud.com'

GATEWAY_CONTROLLER_NAME = os.environ.get(
    'GATEWAY_CONTROLLER_NAME', '{}/gateway-controller'.format(GATEWAY_DOMAIN))

# restrict the controller to a single GatewayClass, empty means every class it owns
GATEWAY_CLASS_NAME = os.environ.get('GATEWAY_CLASS_NAME', '')

GATEWAY_FINALIZER = '{}/gateway-cleanup'.format(GATEWAY_DOMAIN)

GATEWAY_LABEL_ID = os.environ.get(
    'GATEWAY_LB_LABEL_SELECTOR', '{}/api-gateway-id'.format(GATEWAY_DOMAIN))

SECRET_LABEL_ID = '{}/api-secret-id'.format(GATEWAY_DOMAIN)

# listener tls option naming a certificate already stored at the provider
TLS_EXTERNAL_ID_KEY = 'sc-certmgr-cert-id'

# seconds between passes while a load balancer is pending or a sync failed
GATEWAY_REQUEUE_AFTER = 10

# empty means every namespace
GATEWAY_WATCH_NAMESPACE = os.environ.get('GATEWAY_WATCH_NAMESPACE', '')

# servers.com settings
SC_API_URL = os.environ.get('SC_API_URL') or 'https://api.servers.com/v1'
SC_ACCESS_TOKEN = os.environ.get('SC_ACCESS_TOKEN', '')
SC_LOCATION_ID = int_from_env('SC_LOCATION_ID', 1)
PROVIDER_API_TIMEOUT = int_from_env('PROVIDER_API_TIMEOUT', 30)
