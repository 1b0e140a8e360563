from controller.settings.production import *  # noqa

# A boolean that turns on/off debug mode.
# https://docs.djangoproject.com/en/1.11/ref/settings/#debug
DEBUG = True

# If set to True, Django's normal exception handling of view functions
# will be suppressed, and exceptions will propagate upwards
# https://docs.djangoproject.com/en/1.11/ref/settings/#debug-propagate-exceptions
DEBUG_PROPAGATE_EXCEPTIONS = True

# kubernetes api for testing, served by kube.mock
SCHEDULER_URL = 'http://test-kube.example.com'
K8S_API_VERIFY_TLS = False

SC_API_URL = 'http://test-provider.example.com/v1'
SC_ACCESS_TOKEN = 'test-token'
SC_LOCATION_ID = 1
GATEWAY_CLASS_NAME = ''
