import base64

from kube.resources import Resource


class Secret(Resource):
    plural = 'secrets'

    @staticmethod
    def decode(secret, key):
        """Return the raw bytes stored under key, or None when the key is absent."""
        value = (secret.get('data') or {}).get(key)
        if value is None:
            return None
        return base64.b64decode(value)
