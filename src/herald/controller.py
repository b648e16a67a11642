"""Registration lifecycle for a server listed in a directory service.

The controller sequences register, update and deregister exchanges, allows
only one exchange in flight at a time, and owns the periodic refresh timer.
All operations run as tasks on the current asyncio event loop; the only
suspension points are the awaits on the directory transport.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .directory import DirectoryTransport, EndpointKind, ExchangeResult
from .record import ServerRecord
from .scheduler import ScheduleHandle

logger = logging.getLogger(__name__)


class RegistrationState(Enum):
    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"
    UPDATING = "updating"
    DEREGISTERING = "deregistering"


_BUSY_STATES = frozenset({
    RegistrationState.REGISTERING,
    RegistrationState.UPDATING,
    RegistrationState.DEREGISTERING,
})


class Operation(Enum):
    REGISTER = "register"
    UPDATE = "update"
    DEREGISTER = "deregister"


class Outcome(Enum):
    """How a requested operation ended."""
    SUCCESS = "success"
    BUSY = "busy"
    TRANSPORT_FAILURE = "transport_failure"
    PRECONDITION_NOT_MET = "precondition_not_met"


@dataclass(frozen=True)
class StateTransition:
    previous: RegistrationState
    current: RegistrationState


@dataclass(frozen=True)
class OperationEvent:
    operation: Operation
    outcome: Outcome
    result: Optional[ExchangeResult] = None
    override: bool = False


@dataclass
class RegistrationPolicy:
    """Knobs the controller reads; supplied by the embedding application."""
    retry_registration_as_update_on_fail: bool = True
    update_server_periodically: bool = False
    update_server_period_seconds: float = 300

    @classmethod
    def from_config(cls, config) -> 'RegistrationPolicy':
        return cls(
            retry_registration_as_update_on_fail=config.retry_registration_as_update_on_fail,
            update_server_periodically=config.update_server_periodically,
            update_server_period_seconds=config.update_server_period_seconds,
        )


class RegistrationController:
    """Keeps one server's directory entry in step with its lifecycle.

    ``register``, ``update`` and ``deregister`` return immediately.  They
    hand back the ``asyncio.Task`` doing the work, or ``None`` when the
    request was rejected (busy) or had nothing to do (update before
    registering).  Outcomes are reported through listeners and the log,
    never raised.
    """

    def __init__(self, record: ServerRecord, communication_key: str,
                 client: DirectoryTransport, scheduler,
                 policy: Optional[RegistrationPolicy] = None):
        self._record = record
        self._key = communication_key
        self._client = client
        self._scheduler = scheduler
        self._policy = policy or RegistrationPolicy()

        self._state = RegistrationState.UNREGISTERED
        self._schedule: Optional[ScheduleHandle] = None
        self._inflight: Optional[asyncio.Task] = None
        self._transition_listeners: list[Callable[[StateTransition], None]] = []
        self._event_listeners: list[Callable[[OperationEvent], None]] = []

    # -- observers ---------------------------------------------------------

    def add_transition_listener(self, callback: Callable[[StateTransition], None]) -> None:
        self._transition_listeners.append(callback)

    def add_event_listener(self, callback: Callable[[OperationEvent], None]) -> None:
        self._event_listeners.append(callback)

    def _notify(self, listeners, payload) -> None:
        for callback in listeners:
            try:
                callback(payload)
            except Exception:
                logger.exception("Registration listener %r raised", callback)

    def _set_state(self, state: RegistrationState) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        logger.debug("%s -> %s", previous.value, state.value)
        self._notify(self._transition_listeners, StateTransition(previous, state))

    def _emit(self, operation: Operation, outcome: Outcome,
              result: Optional[ExchangeResult] = None, override: bool = False) -> None:
        self._notify(self._event_listeners, OperationEvent(operation, outcome, result, override))

    # -- public operations -------------------------------------------------

    def register(self) -> Optional[asyncio.Task]:
        if self._reject_if_busy(Operation.REGISTER):
            return None
        self._set_state(RegistrationState.REGISTERING)
        return self._spawn(self._register())

    def update(self) -> Optional[asyncio.Task]:
        return self._request_update(override=False)

    def deregister(self) -> Optional[asyncio.Task]:
        if self._reject_if_busy(Operation.DEREGISTER):
            return None
        prior = self._state
        self._set_state(RegistrationState.DEREGISTERING)
        return self._spawn(self._deregister(prior))

    def on_start(self) -> Optional[asyncio.Task]:
        """Host lifecycle hook: the server came up, announce it."""
        return self.register()

    def on_stop(self) -> None:
        """Host lifecycle hook: stop refreshing.  Safe to call repeatedly."""
        self._cancel_schedule()

    async def drain(self) -> None:
        """Wait until no operation is in flight."""
        while self._inflight is not None:
            task = self._inflight
            await asyncio.wait([task])
            if self._inflight is task:
                break

    # -- internals ---------------------------------------------------------

    def _reject_if_busy(self, operation: Operation) -> bool:
        if self._state not in _BUSY_STATES:
            return False
        logger.warning(
            "Trying to %s the server while already %s; request ignored",
            operation.value, self._state.value,
        )
        self._emit(operation, Outcome.BUSY)
        return True

    def _request_update(self, override: bool) -> Optional[asyncio.Task]:
        if self._reject_if_busy(Operation.UPDATE):
            return None
        if not override and self._state is not RegistrationState.REGISTERED:
            logger.debug("Skipping update: server is not registered")
            self._emit(Operation.UPDATE, Outcome.PRECONDITION_NOT_MET)
            return None
        prior = self._state
        self._set_state(RegistrationState.UPDATING)
        return self._spawn(self._update(prior, override))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return task

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _exchange(self, kind: EndpointKind, fields,
                        rollback: RegistrationState) -> ExchangeResult:
        try:
            return await self._client.send(kind, fields)
        except asyncio.CancelledError:
            self._set_state(rollback)
            raise
        except Exception as exc:
            logger.exception("Directory %s exchange raised", kind.value)
            return ExchangeResult(False, 0, str(exc))

    async def _register(self) -> None:
        result = await self._exchange(
            EndpointKind.ADD,
            self._record.add_fields(self._key),
            rollback=RegistrationState.UNREGISTERED,
        )
        if result.success:
            logger.info("Registered server %s with the directory", self._record.uuid)
            self._set_state(RegistrationState.REGISTERED)
            self._emit(Operation.REGISTER, Outcome.SUCCESS, result)
            self._arm_schedule()
            return

        logger.error(
            "Registering server %s failed (status %d): %s. Required fields such "
            "as the UUID, name or port may be missing; call register again to retry.",
            self._record.uuid, result.status_code, result.error_detail,
        )
        if not self._policy.retry_registration_as_update_on_fail:
            self._cancel_schedule()
            self._set_state(RegistrationState.UNREGISTERED)
            self._emit(Operation.REGISTER, Outcome.TRANSPORT_FAILURE, result)
            return

        # The entry may survive from an earlier run, in which case the
        # directory rejects the add but accepts an update.  Go straight to
        # UPDATING so listeners never observe an idle controller in between.
        logger.info("Retrying registration as an update")
        self._set_state(RegistrationState.UPDATING)
        self._emit(Operation.REGISTER, Outcome.TRANSPORT_FAILURE, result)
        if await self._update(RegistrationState.UNREGISTERED, override=True):
            self._arm_schedule()
        else:
            self._cancel_schedule()

    async def _update(self, prior: RegistrationState, override: bool) -> bool:
        result = await self._exchange(
            EndpointKind.UPDATE,
            self._record.update_fields(self._key),
            rollback=prior,
        )
        if result.success:
            logger.info("Updated server %s in the directory", self._record.uuid)
            self._set_state(RegistrationState.REGISTERED)
            self._emit(Operation.UPDATE, Outcome.SUCCESS, result, override)
            return True

        logger.error(
            "Updating server %s failed (status %d): %s. The communication key or "
            "server UUID may be wrong, or the directory is unreachable.",
            self._record.uuid, result.status_code, result.error_detail,
        )
        self._set_state(prior)
        self._emit(Operation.UPDATE, Outcome.TRANSPORT_FAILURE, result, override)
        return False

    async def _deregister(self, prior: RegistrationState) -> None:
        result = await self._exchange(
            EndpointKind.REMOVE,
            self._record.remove_fields(self._key),
            rollback=prior,
        )
        if result.success:
            logger.info("Deregistered server %s", self._record.uuid)
            self._set_state(RegistrationState.UNREGISTERED)
            self._cancel_schedule()
            self._emit(Operation.DEREGISTER, Outcome.SUCCESS, result)
            return

        logger.error(
            "Deregistering server %s failed (status %d): %s. Check the "
            "communication key and UUID; the entry may already have expired.",
            self._record.uuid, result.status_code, result.error_detail,
        )
        self._set_state(prior)
        self._emit(Operation.DEREGISTER, Outcome.TRANSPORT_FAILURE, result)

    def _arm_schedule(self) -> None:
        if not self._policy.update_server_periodically:
            return
        self._cancel_schedule()
        period = self._policy.update_server_period_seconds
        self._schedule = self._scheduler.schedule_repeating(period, period, self.update)
        logger.info("Refreshing directory entry every %s seconds", period)

    def _cancel_schedule(self) -> None:
        if self._schedule is None:
            return
        self._scheduler.cancel_all([self._schedule])
        self._schedule = None
