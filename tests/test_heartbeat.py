import asyncio

import pytest

from herald.config import HeraldConfig
from herald.heartbeat import build_controller, run_adapter

from conftest import FAIL, OK, FakeDirectory


@pytest.mark.asyncio
async def test_run_adapter_registers_then_deregisters():
    directory = FakeDirectory(OK, OK)
    stop = asyncio.Event()
    config = HeraldConfig(server_uuid="u1")

    runner = asyncio.create_task(run_adapter(config, stop=stop, client=directory))
    await asyncio.sleep(0.01)
    assert directory.kinds == ["add"]

    stop.set()
    assert await runner is True
    assert directory.kinds == ["add", "remove"]
    assert directory.sent[1][1]["serverUuid"] == "u1"


@pytest.mark.asyncio
async def test_run_adapter_refreshes_periodically():
    directory = FakeDirectory()
    stop = asyncio.Event()
    config = HeraldConfig(server_uuid="u1", update_server_periodically=True,
                          update_server_period_seconds=0.01)

    runner = asyncio.create_task(run_adapter(config, stop=stop, client=directory))
    await asyncio.sleep(0.06)
    stop.set()
    await runner

    kinds = directory.kinds
    assert kinds[0] == "add"
    assert kinds[-1] == "remove"
    assert kinds.count("update") >= 2


@pytest.mark.asyncio
async def test_run_adapter_reports_failed_deregistration():
    directory = FakeDirectory(OK, FAIL)
    stop = asyncio.Event()
    stop.set()

    ok = await run_adapter(HeraldConfig(server_uuid="u1"), stop=stop, client=directory)

    assert ok is False
    assert directory.kinds == ["add", "remove"]


@pytest.mark.asyncio
async def test_run_adapter_can_leave_entry_in_place():
    directory = FakeDirectory(OK)
    stop = asyncio.Event()
    stop.set()

    ok = await run_adapter(HeraldConfig(server_uuid="u1", deregister_on_exit=False),
                           stop=stop, client=directory)

    assert ok is True
    assert directory.kinds == ["add"]


def test_build_controller_assigns_uuid():
    config = HeraldConfig()
    build_controller(config, client=FakeDirectory())
    assert config.server_uuid
