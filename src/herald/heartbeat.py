"""Long-running adapter: keep the server listed until the process is told to stop."""

import asyncio
import logging
import signal
from typing import Optional

from .config import HeraldConfig, build_record, ensure_server_uuid
from .controller import (
    Operation,
    OperationEvent,
    Outcome,
    RegistrationController,
    RegistrationPolicy,
    StateTransition,
)
from .directory import DirectoryClient
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)


def build_controller(config: HeraldConfig,
                     client: Optional[DirectoryClient] = None) -> RegistrationController:
    """Wire a RegistrationController from *config*."""
    if ensure_server_uuid(config):
        logger.warning(
            "No server_uuid configured; using %s for this run only. "
            "Run 'herald init-config' to persist one.", config.server_uuid,
        )
    if client is None:
        client = DirectoryClient(
            config.server_address,
            endpoints=config.endpoints,
            timeout=config.request_timeout,
        )
    controller = RegistrationController(
        build_record(config),
        config.communication_key,
        client,
        AsyncioScheduler(),
        RegistrationPolicy.from_config(config),
    )

    def _log_transition(t: StateTransition) -> None:
        logger.info("%s -> %s", t.previous.value, t.current.value)

    controller.add_transition_listener(_log_transition)
    return controller


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform or outside the main thread.
            pass


async def run_adapter(
    config: HeraldConfig,
    stop: Optional[asyncio.Event] = None,
    client: Optional[DirectoryClient] = None,
) -> bool:
    """Register, refresh periodically, and deregister once *stop* is set.

    When *stop* is not given, SIGINT and SIGTERM set it.  Returns False if
    the final deregistration was attempted and failed.
    """
    controller = build_controller(config, client)
    if stop is None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)

    deregistered: list[bool] = []

    def _track(event: OperationEvent) -> None:
        if event.operation is Operation.DEREGISTER and event.outcome is not Outcome.BUSY:
            deregistered.append(event.outcome is Outcome.SUCCESS)

    controller.add_event_listener(_track)

    controller.on_start()
    logger.info(
        "Announcing '%s' (%s) to %s",
        config.server_name, config.server_uuid, config.server_address,
    )
    await stop.wait()
    logger.info("Shutting down")

    controller.on_stop()
    await controller.drain()
    if not config.deregister_on_exit:
        return True

    task = controller.deregister()
    if task is not None:
        await task
    return all(deregistered)
