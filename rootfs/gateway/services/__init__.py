"""
Synchronizers converging provider state. The reconciler only talks to them
through these base classes, so tests and other providers can stand in.
"""
from gateway.types import GatewayInfo, LBResult


class BaseTLSManager(object):

    def ensure_tls(self, tls_info: dict, ctx=None) -> dict[str, str]:
        """Make sure a certificate exists for every hostname, returning hostname to id."""
        raise NotImplementedError()


class BaseLBManager(object):

    def ensure_lb(self, info: GatewayInfo, certificates: dict[str, str], ctx=None) -> LBResult:
        raise NotImplementedError()

    def delete_lb(self, label_selector: str, ctx=None) -> None:
        raise NotImplementedError()
