REASON_INVALID_GATEWAY = 'InvalidGateway'
REASON_INVALID_TLS = 'InvalidTLS'
REASON_SYNC_FAILED = 'SyncFailed'
REASON_SYNC_TLS_FAILED = 'SyncTLSFailed'


class GatewayException(Exception):
    """Base class of every failure raised by the reconciliation core."""
    reason = ''

    def __init__(self, message, reason=None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason

    @property
    def message(self):
        return str(self)


class ValidationError(GatewayException):
    """The Gateway or one of its routes describes something that cannot be built."""
    reason = REASON_INVALID_GATEWAY


class SyncError(GatewayException):
    """A provider call failed while converging certificates or the load balancer."""
    reason = REASON_SYNC_FAILED


class FatalInconsistency(SyncError):
    """More than one provider object carries a label that must be unique."""


class ReconcileCancelled(GatewayException):
    """The call context was cancelled or ran past its deadline."""
