"""Loopback tests: real sockets against FakeTerminals served on 127.0.0.1."""

from __future__ import annotations

import pytest

from zk_terminal.client import ZKTerminal
from zk_terminal.protocol.commands import CMD_CONNECT, CMD_EXIT
from tests.helpers.fake_terminal import FAST_TIMEOUTS, FakeTerminal
from tests.integration.conftest import LOOPBACK, TCPTerminalServer

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_tcp_session_end_to_end(tcp_terminal: TCPTerminalServer) -> None:
    progress: list[int] = []

    async with ZKTerminal(LOOPBACK, port=tcp_terminal.port, tcp_timeouts=FAST_TIMEOUTS) as zk:
        assert zk.connection_type == "tcp"
        users = await zk.list_users()
        logs = await zk.list_attendance(on_progress=lambda received, _total: progress.append(received))

    assert [(u.name, u.device_user_id) for u in users] == [("JOHN", "1234"), ("MARY", "1235")]
    assert logs.error is None
    assert len(logs) == 2000
    assert {log.source_address for log in logs} == {LOOPBACK}
    assert progress[-1] == 2000 * 40 + 4
    commands = tcp_terminal.terminal.commands()
    assert commands[0] == CMD_CONNECT
    assert commands[-1] == CMD_EXIT


@pytest.mark.asyncio
async def test_refused_tcp_falls_back_to_udp(udp_terminal: tuple[FakeTerminal, int]) -> None:
    terminal, port = udp_terminal
    zk = ZKTerminal(LOOPBACK, port=port, local_port=0, tcp_timeouts=FAST_TIMEOUTS, udp_timeouts=FAST_TIMEOUTS)

    await zk.connect()
    try:
        assert zk.connection_type == "udp"
        users = await zk.list_users()
        logs = await zk.list_attendance()
        stamp = await zk.get_time()
    finally:
        await zk.disconnect()

    assert [u.device_user_id for u in users] == ["1234"]
    assert len(logs) == 300
    assert stamp.year == 2000
    assert terminal.commands()[-1] == CMD_EXIT
    assert zk.status().connected is False
