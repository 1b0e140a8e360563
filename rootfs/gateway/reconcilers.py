"""
Reconcilers for Gateway and GatewayClass objects.

A Gateway pass is an explicit state machine: the entry state is read off the
fetched object, and every handler performs one step and names the next state.
The transition table keeps the finalizer ahead of any sync, TLS ahead of the
load balancer and Accepted ahead of Programmed.
"""
import copy
import enum
import logging
import socket
from dataclasses import dataclass

from django.conf import settings

from kube import KubeException, KubeHTTPException
from gateway.context import Context
from gateway.exceptions import SyncError, ValidationError
from gateway.helpers import set_status_condition
from gateway.services.lb import LB_ACTIVE_STATUS
from gateway.tlsconfig import build_tls_info
from gateway.topology import build_gateway_info

logger = logging.getLogger(__name__)

CONDITION_ACCEPTED = 'Accepted'
CONDITION_PROGRAMMED = 'Programmed'

EVENT_NORMAL = 'Normal'
EVENT_WARNING = 'Warning'


@dataclass
class Result:
    """requeue_after is in seconds, None leaves the next pass to watch events."""
    requeue_after: float | None = None


class State(enum.Enum):
    DELETING = 'Deleting'
    UNMANAGED = 'Unmanaged'
    ENSURE_FINALIZER = 'EnsureFinalizer'
    VALIDATING = 'Validating'
    INVALID = 'Invalid'
    ACCEPTED = 'Accepted'
    SYNC_FAILED = 'SyncFailed'
    PENDING = 'Pending'
    ACTIVE = 'Active'
    DONE = 'Done'


TRANSITIONS = {
    State.DELETING: (State.DONE, ),
    State.UNMANAGED: (State.DONE, ),
    State.ENSURE_FINALIZER: (State.VALIDATING, ),
    State.VALIDATING: (State.INVALID, State.ACCEPTED),
    State.INVALID: (State.DONE, ),
    State.ACCEPTED: (State.SYNC_FAILED, State.PENDING, State.ACTIVE),
    State.SYNC_FAILED: (State.DONE, ),
    State.PENDING: (State.DONE, ),
    State.ACTIVE: (State.DONE, ),
}


class Pass(object):
    """Everything one reconcile pass learns about its Gateway."""

    def __init__(self, gateway, ctx):
        self.gateway = gateway
        self.ctx = ctx
        self.error = None
        self.tls_info = None
        self.info = None
        self.lb = None
        self.result = Result()

    @property
    def key(self):
        metadata = self.gateway['metadata']
        return '{}/{}'.format(metadata.get('namespace', ''), metadata['name'])


class GatewayReconciler(object):

    def __init__(self, kube, ownership, tls_manager, lb_manager, controller_name=None,
                 requeue_after=None):
        self.kube = kube
        self.ownership = ownership
        self.tls_manager = tls_manager
        self.lb_manager = lb_manager
        self.controller_name = controller_name or settings.GATEWAY_CONTROLLER_NAME
        self.requeue_after = requeue_after or settings.GATEWAY_REQUEUE_AFTER
        self.instance = socket.gethostname()

    def reconcile(self, namespace, name, ctx=None):
        ctx = ctx or Context.background()
        ctx.check()
        try:
            gateway = self.kube.gateways.get(namespace, name, ctx=ctx).json()
        except KubeHTTPException as e:
            if e.not_found:
                return Result()
            raise

        state = self.entry_state(gateway, ctx)
        if state is None:
            return Result()
        current = Pass(gateway, ctx)
        logger.info('gateway {}: reconcile starts in state {}'.format(current.key, state.value))
        while state is not State.DONE:
            following = getattr(self, 'on_' + state.name.lower())(current)
            if following not in TRANSITIONS[state]:
                raise RuntimeError('illegal transition {} -> {}'.format(state.value, following.value))
            if following is not State.DONE:
                logger.debug('gateway {}: {} -> {}'.format(current.key, state.value, following.value))
            state = following
        return current.result

    def entry_state(self, gateway, ctx=None):
        metadata = gateway['metadata']
        if metadata.get('deletionTimestamp'):
            if settings.GATEWAY_FINALIZER in (metadata.get('finalizers') or []):
                return State.DELETING
            return None
        if not self.ownership.is_managed(gateway, ctx):
            return State.UNMANAGED
        return State.ENSURE_FINALIZER

    # state handlers

    def on_deleting(self, current):
        self.cleanup(current)
        return State.DONE

    def on_unmanaged(self, current):
        self.cleanup(current)
        self.set_condition(
            current, CONDITION_PROGRAMMED, 'False', 'NoLongerManaged',
            'Gateway is no longer managed by {}'.format(self.controller_name))
        return State.DONE

    def on_ensure_finalizer(self, current):
        finalizers = current.gateway['metadata'].get('finalizers') or []
        if settings.GATEWAY_FINALIZER not in finalizers:
            self.patch_finalizers(current, finalizers + [settings.GATEWAY_FINALIZER])
        return State.VALIDATING

    def on_validating(self, current):
        try:
            current.tls_info = build_tls_info(self.kube, current.gateway, current.ctx)
            current.info = build_gateway_info(self.kube, current.gateway, current.ctx)
        except ValidationError as e:
            current.error = e
            return State.INVALID
        return State.ACCEPTED

    def on_invalid(self, current):
        error = current.error
        logger.info('gateway {}: {}: {}'.format(current.key, error.reason, error))
        self.record_event(current, EVENT_WARNING, error.reason, str(error))
        self.set_condition(current, CONDITION_ACCEPTED, 'False', error.reason, str(error))
        return State.DONE

    def on_accepted(self, current):
        self.set_condition(
            current, CONDITION_ACCEPTED, 'True', 'Accepted', 'Gateway is valid and accepted')
        try:
            # TODO: a certificate created here is left behind when ensure_lb fails,
            # decide whether certificates and the load balancer sync as one unit
            certificates = self.tls_manager.ensure_tls(current.tls_info, current.ctx)
            current.lb = self.lb_manager.ensure_lb(current.info, certificates, current.ctx)
        except SyncError as e:
            current.error = e
            return State.SYNC_FAILED
        if (current.lb.status or '').lower() != LB_ACTIVE_STATUS:
            return State.PENDING
        return State.ACTIVE

    def on_sync_failed(self, current):
        error = current.error
        logger.warning('gateway {}: {}: {}'.format(current.key, error.reason, error))
        self.set_condition(current, CONDITION_PROGRAMMED, 'False', error.reason, str(error))
        self.record_event(current, EVENT_WARNING, error.reason, str(error))
        current.result = Result(requeue_after=self.requeue_after)
        return State.DONE

    def on_pending(self, current):
        message = 'Load balancer created, waiting for status=Active'
        self.set_condition(current, CONDITION_PROGRAMMED, 'False', 'Created', message)
        self.record_event(current, EVENT_WARNING, 'Created', message)
        current.result = Result(requeue_after=self.requeue_after)
        return State.DONE

    def on_active(self, current):
        addresses = [{'type': 'IPAddress', 'value': ip} for ip in current.lb.external_addresses]
        self.set_condition(
            current, CONDITION_PROGRAMMED, 'True', 'Programmed', 'Successfully programmed',
            addresses=addresses)
        self.record_event(current, EVENT_NORMAL, 'Synced', 'Successfully synced')
        logger.info('gateway {}: load balancer {} is active'.format(current.key, current.lb.id))
        return State.DONE

    # cluster writes

    def cleanup(self, current):
        """Delete the load balancer of the Gateway, then drop the finalizer."""
        uid = current.gateway['metadata'].get('uid', '')
        self.lb_manager.delete_lb('{}={}'.format(settings.GATEWAY_LABEL_ID, uid), current.ctx)
        finalizers = current.gateway['metadata'].get('finalizers') or []
        if settings.GATEWAY_FINALIZER in finalizers:
            self.patch_finalizers(
                current, [f for f in finalizers if f != settings.GATEWAY_FINALIZER])

    def patch_finalizers(self, current, finalizers):
        metadata = current.gateway['metadata']
        response = self.kube.gateways.patch(
            metadata.get('namespace'), metadata['name'],
            {'metadata': {'finalizers': finalizers}}, metadata['resourceVersion'],
            ctx=current.ctx)
        current.gateway = response.json()

    def set_condition(self, current, condition_type, status, reason, message, addresses=None):
        """Patch one condition, and optionally the addresses, against the fetched version."""
        metadata = current.gateway['metadata']
        conditions = copy.deepcopy((current.gateway.get('status') or {}).get('conditions') or [])
        set_status_condition(
            conditions, condition_type, status, reason, message, metadata.get('generation', 0))
        patch = {'conditions': conditions}
        if addresses is not None:
            patch['addresses'] = addresses
        response = self.kube.gateways.patch_status(
            metadata.get('namespace'), metadata['name'], patch, metadata['resourceVersion'],
            ctx=current.ctx)
        current.gateway = response.json()

    def record_event(self, current, event_type, reason, message):
        metadata = current.gateway['metadata']
        try:
            self.kube.events.create(
                metadata.get('namespace'), current.gateway, message, type=event_type,
                reason=reason, controller=self.controller_name, instance=self.instance,
                ctx=current.ctx)
        except KubeException as e:
            logger.error('failed to record event for gateway {}: {}'.format(current.key, e))


class GatewayClassReconciler(object):

    def __init__(self, kube, ownership):
        self.kube = kube
        self.ownership = ownership

    def reconcile(self, name, ctx=None):
        ctx = ctx or Context.background()
        ctx.check()
        try:
            gateway_class = self.kube.gatewayclass.get(name, ctx=ctx).json()
        except KubeHTTPException as e:
            if e.not_found:
                return Result()
            raise

        controller_name = gateway_class.get('spec', {}).get('controllerName')
        if controller_name != self.ownership.controller_name:
            logger.debug('GatewayClass {}: controllerName {} does not match {}, skipping'.format(
                name, controller_name, self.ownership.controller_name))
            return Result()

        status = gateway_class.setdefault('status', {})
        conditions = status.setdefault('conditions', [])
        set_status_condition(
            conditions, CONDITION_ACCEPTED, 'True', 'Accepted',
            'GatewayClass accepted by controller', gateway_class['metadata'].get('generation', 0))
        self.kube.gatewayclass.update_status(name, gateway_class, ctx=ctx)
        logger.debug('GatewayClass {}: set Accepted=True'.format(name))
        return Result()
