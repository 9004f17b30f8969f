"""Tests for the Fleet Poller: isolation, aggregation, timeouts and persistence."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from fakes import RconStub, fake_session_factory, make_descriptor, unused_port
from fleet.models import ClusterSnapshot, PollErrorKind, ServerStatus, ServerStatusSnapshot
from fleet.poller import FleetPoller
from fleet.registry import StaticServerRegistry
from fleet.settings import FleetSettings
from fleet.sink import MemoryStatusSink, SqliteStatusSink
from fleet.uptime import MemoryUptimeStore
from remote_console.errors import AuthError, ConnectError, ProtocolError
from remote_console.models import ParseStatus, SessionState
from remote_console.session import CMD_DIAGNOSTIC, CMD_LIST_PLAYERS, RconSession

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

def _poller(descriptors, behaviours, sink=None, uptime=None, clock=lambda: T0, poll_timeout=2.0, sessions=None):
    return FleetPoller(
        StaticServerRegistry(descriptors),
        uptime or MemoryUptimeStore(),
        sink or MemoryStatusSink(),
        FleetSettings(poll_timeout=poll_timeout, connect_timeout=1.0, rcon_timeout=1.0),
        session_factory=fake_session_factory(behaviours, sessions),
        clock=clock,
    )


def _live_poller(descriptors, sessions: list, poll_timeout=5.0):
    def make(*args, **kwargs):
        session = RconSession(*args, **kwargs)
        sessions.append(session)
        return session

    return FleetPoller(
        StaticServerRegistry(descriptors),
        MemoryUptimeStore(),
        MemoryStatusSink(),
        FleetSettings(poll_timeout=poll_timeout, connect_timeout=2.0, rcon_timeout=2.0),
        session_factory=make,
    )


# ------------------------------------------------------------------ #
# Isolation
# ------------------------------------------------------------------ #

class TestIsolation:
    @pytest.mark.asyncio
    async def test_one_dead_server_does_not_affect_others(self):
        descriptors = [make_descriptor(1), make_descriptor(2), make_descriptor(3)]
        behaviours = {
            27001: {"players": 3},
            27002: {"raise": ConnectError("Failed to connect to RCON: refused")},
            27003: {"players": 5},
        }
        cluster = await _poller(descriptors, behaviours).poll_cluster()

        assert cluster.total_servers == 3
        assert cluster.online_servers == 2
        assert cluster.total_players == 8
        dead = cluster.servers["server2"]
        assert dead.status == ServerStatus.OFFLINE
        assert dead.error_message
        assert dead.player_count == 0 and dead.ping_ms == 0
        assert cluster.servers["server1"].player_count == 3
        assert cluster.servers["server3"].status == ServerStatus.ONLINE

    @pytest.mark.asyncio
    async def test_every_server_failing_still_returns_cluster(self):
        descriptors = [make_descriptor(1), make_descriptor(2)]
        behaviours = {
            27001: {"raise": AuthError("RCON authentication rejected")},
            27002: {"raise": ProtocolError("Short read")},
        }
        cluster = await _poller(descriptors, behaviours).poll_cluster()
        assert cluster.total_servers == 2
        assert cluster.online_servers == 0
        assert cluster.total_players == 0
        assert cluster.uptime_percentage == 0.0

    @pytest.mark.asyncio
    async def test_empty_registry(self):
        cluster = await _poller([], {}).poll_cluster()
        assert cluster.total_servers == 0
        assert cluster.servers == {}

    @pytest.mark.asyncio
    async def test_error_kinds(self):
        poller = _poller(
            [make_descriptor(1), make_descriptor(2)],
            {
                27001: {"raise": AuthError("rejected")},
                27002: {"raise": ConnectError("refused")},
            },
        )
        auth = await poller.poll_server(make_descriptor(1))
        connect = await poller.poll_server(make_descriptor(2))
        assert not auth.ok and auth.error.kind == PollErrorKind.AUTH
        assert connect.error.kind == PollErrorKind.CONNECT
        assert auth.snapshot is None

    @pytest.mark.asyncio
    async def test_slow_server_times_out_without_blocking_cycle(self):
        descriptors = [make_descriptor(1), make_descriptor(2)]
        behaviours = {27001: {"players": 2}, 27002: {"delay": 30}}
        poller = _poller(descriptors, behaviours, poll_timeout=0.2)

        loop = asyncio.get_running_loop()
        started = loop.time()
        cluster = await poller.poll_cluster()

        assert loop.time() - started < 5
        slow = cluster.servers["server2"]
        assert slow.status == ServerStatus.OFFLINE
        assert "timed out" in slow.error_message
        assert cluster.online_servers == 1

    @pytest.mark.asyncio
    async def test_sessions_closed_after_success(self):
        sessions: list = []
        await _poller([make_descriptor(1)], {27001: {}}, sessions=sessions).poll_cluster()
        assert sessions and all(s.closed for s in sessions)


# ------------------------------------------------------------------ #
# Aggregation
# ------------------------------------------------------------------ #

class TestAggregation:
    @pytest.mark.asyncio
    async def test_totals_independent_of_completion_order(self):
        descriptors = [make_descriptor(n) for n in range(1, 7)]
        players = {n: n * 2 for n in range(1, 7)}
        failing = {2, 5}
        expected_players = sum(p for n, p in players.items() if n not in failing)

        for _ in range(3):
            behaviours = {}
            for n in range(1, 7):
                b = {"players": players[n], "delay": random.uniform(0, 0.05)}
                if n in failing:
                    b["raise"] = ConnectError("refused")
                behaviours[27000 + n] = b
            cluster = await _poller(descriptors, behaviours).poll_cluster()
            assert cluster.total_players == expected_players
            assert cluster.online_servers == 4
            assert set(cluster.servers) == {d.key for d in descriptors}

    def test_duplicate_keys_counted_once(self):
        snapshots = [
            ServerStatusSnapshot(server_key="a", status=ServerStatus.ONLINE, player_count=3, timestamp=T0),
            ServerStatusSnapshot(server_key="a", status=ServerStatus.ONLINE, player_count=3, timestamp=T0),
            ServerStatusSnapshot(server_key="b", status=ServerStatus.OFFLINE, timestamp=T0),
        ]
        cluster = ClusterSnapshot.from_snapshots(snapshots, generated_at=T0)
        assert cluster.total_servers == len(cluster.servers) == 2
        assert cluster.online_servers == 1
        assert cluster.total_players == 3

    @pytest.mark.asyncio
    async def test_snapshot_fields(self):
        cluster = await _poller(
            [make_descriptor(1)], {27001: {"players": 2, "ping": 40, "max_players": 100}}
        ).poll_cluster()
        snap = cluster.servers["server1"]
        assert snap.name == "Server 1"
        assert snap.map_name == "Map1"
        assert snap.max_players == 100
        assert snap.ping_ms == 40
        assert [p.name for p in snap.players] == ["p0", "p1"]
        assert snap.timestamp == T0
        assert cluster.generated_at == T0


# ------------------------------------------------------------------ #
# Uptime & persistence
# ------------------------------------------------------------------ #

class TestUptimeAndPersistence:
    @pytest.mark.asyncio
    async def test_uptime_counts_from_first_sighting(self):
        now = [T0]
        uptime = MemoryUptimeStore()
        poller = _poller([make_descriptor(1)], {27001: {}}, uptime=uptime, clock=lambda: now[0])

        first = await poller.poll_cluster()
        assert first.servers["server1"].uptime_seconds == 0
        assert uptime.get("server1") == T0

        now[0] = T0 + timedelta(minutes=2)
        second = await poller.poll_cluster()
        assert second.servers["server1"].uptime_seconds == 120

    @pytest.mark.asyncio
    async def test_offline_server_reports_zero_uptime(self):
        uptime = MemoryUptimeStore()
        cluster = await _poller(
            [make_descriptor(1)], {27001: {"raise": ConnectError("refused")}}, uptime=uptime
        ).poll_cluster()
        assert cluster.servers["server1"].uptime_seconds == 0

    @pytest.mark.asyncio
    async def test_repeated_polls_upsert_one_row_per_server(self):
        sink = SqliteStatusSink(":memory:")
        descriptors = [make_descriptor(1), make_descriptor(2)]
        behaviours = {27001: {"players": 4}, 27002: {"raise": ConnectError("refused")}}
        poller = _poller(descriptors, behaviours, sink=sink)

        await poller.poll_cluster()
        await poller.poll_cluster()

        assert sink.count() == 2
        row = sink.get("server1")
        assert row.status == ServerStatus.ONLINE
        assert row.players_online == 4
        assert sink.get("server2").status == ServerStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_fail_cycle(self):
        class BrokenSink(MemoryStatusSink):
            def upsert(self, row):
                raise RuntimeError("database is locked")

        cluster = await _poller([make_descriptor(1)], {27001: {"players": 1}}, sink=BrokenSink()).poll_cluster()
        assert cluster.online_servers == 1


# ------------------------------------------------------------------ #
# Real sessions
# ------------------------------------------------------------------ #

class TestAgainstRconServers:
    @pytest.mark.asyncio
    async def test_fleet_with_live_and_dead_servers(self):
        responses = {
            CMD_LIST_PLAYERS: "1. Alice, a1b2c3\n2. Bob, d4e5f6\n",
            CMD_DIAGNOSTIC: "MaxPlayers: 50",
        }
        async with RconStub(responses=responses) as one, RconStub(responses={CMD_LIST_PLAYERS: "No Players Connected"}) as three:
            descriptors = [
                make_descriptor(1, rcon_port=one.port),
                make_descriptor(2, rcon_port=await unused_port()),
                make_descriptor(3, rcon_port=three.port),
            ]
            poller = FleetPoller(
                StaticServerRegistry(descriptors),
                MemoryUptimeStore(),
                MemoryStatusSink(),
                FleetSettings(poll_timeout=5.0, connect_timeout=2.0, rcon_timeout=2.0),
            )
            cluster = await poller.poll_cluster()

        assert cluster.total_servers == 3
        assert cluster.online_servers == 2
        assert cluster.total_players == 2
        assert cluster.servers["server1"].max_players == 50
        assert cluster.servers["server2"].status == ServerStatus.OFFLINE
        assert "Failed to connect" in cluster.servers["server2"].error_message
        assert cluster.servers["server3"].player_parse_status == ParseStatus.EMPTY

    @pytest.mark.asyncio
    async def test_timed_out_poll_aborts_connection(self):
        sessions: list[RconSession] = []
        async with RconStub(hang_on=(CMD_LIST_PLAYERS,)) as stub:
            descriptor = make_descriptor(1, rcon_port=stub.port)
            poller = _live_poller([descriptor], sessions, poll_timeout=0.3)
            result = await poller.poll_server(descriptor)
            await asyncio.wait_for(stub.disconnected.wait(), timeout=2.0)

        assert result.error.kind == PollErrorKind.TIMEOUT
        assert "timed out after 0.3s" in result.error.message
        assert sessions[0].state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_poll_closes_session(self):
        sessions: list[RconSession] = []
        async with RconStub(password="other") as stub:
            descriptor = make_descriptor(1, rcon_port=stub.port)
            cluster = await _live_poller([descriptor], sessions).poll_cluster()
            await asyncio.wait_for(stub.disconnected.wait(), timeout=2.0)

        assert cluster.servers["server1"].status == ServerStatus.OFFLINE
        assert sessions[0].state == SessionState.FAILED

    @pytest.mark.asyncio
    async def test_wrong_password_marks_offline(self):
        async with RconStub(password="other") as stub:
            poller = FleetPoller(
                StaticServerRegistry([make_descriptor(1, rcon_port=stub.port)]),
                MemoryUptimeStore(),
                MemoryStatusSink(),
                FleetSettings(poll_timeout=5.0, connect_timeout=2.0, rcon_timeout=2.0),
            )
            result = await poller.poll_server(make_descriptor(1, rcon_port=stub.port))
        assert result.error.kind == PollErrorKind.AUTH
        assert "authentication rejected" in result.error.message
