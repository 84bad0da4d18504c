"""Device session lifecycle against an in-memory CSMS."""

import asyncio
import json

import pytest

from conftest import FakeTransport, frames, make_config
from ocpp_loadsim.actions import ActionRegistry
from ocpp_loadsim.errors import TransportFault
from ocpp_loadsim.models.identity import DeviceIdentity, ProtocolSubtype
from ocpp_loadsim.models.session import SessionState
from ocpp_loadsim.session import DeviceSession

D, C, A, CL = (SessionState.DISCONNECTED, SessionState.CONNECTING, SessionState.ACTIVE, SessionState.CLOSING)


def make_session(transport, subtype=ProtocolSubtype.OCPP16, **config):
    identity = DeviceIdentity(device_id="CP_1_test", protocol_subtype=subtype)
    return DeviceSession(identity, make_config(protocol_subtype=subtype, **config), transport)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_reconnect_budget_scenario(self, transport):
        session = make_session(transport, disconnect_delay_min_ms=100, disconnect_delay_max_ms=100)
        metrics = await session.run()
        assert metrics.reconnect_count == 3
        assert metrics.connect_count == 3
        assert metrics.message_count >= 3
        assert metrics.cycles == 3
        assert metrics.elapsed_time_ms >= 290
        assert len(transport.opens) == 3
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_transitions_repeat_once_per_cycle(self, transport):
        seen = []
        identity = DeviceIdentity(device_id="CP_1_test", protocol_subtype=ProtocolSubtype.OCPP16)
        session = DeviceSession(identity, make_config(), transport, on_state_change=lambda old, new: seen.append((old, new)))
        await session.run()
        assert seen == [(D, C), (C, A), (A, CL), (CL, D)] * 3
        await asyncio.sleep(0.05)
        assert len(transport.opens) == 3

    @pytest.mark.asyncio
    async def test_announce_is_first_frame_of_every_cycle(self, transport):
        await make_session(transport).run()
        for conn in transport.connections:
            first = frames(conn)[0]
            assert first[0] == 2
            assert first[2] == "BootNotification"
            assert first[3]["chargePointSerialNumber"] == "CP_1_test"

    @pytest.mark.asyncio
    async def test_url_and_subprotocol(self, transport):
        session = make_session(transport, subtype=ProtocolSubtype.OCPP21, url_path_prefix="/ocpp")
        await session.run()
        assert transport.opens[0] == ("ws://csms.test:8887/ocpp/CP_1_test", "ocpp2.1")
        boot = frames(transport.connections[0])[0]
        assert boot[3]["chargingStation"]["serialNumber"] == "CP_1_test"

    @pytest.mark.asyncio
    async def test_status_notification_follows_boot(self, transport):
        await make_session(transport, send_status_notification=True).run()
        actions = [f[2] for f in frames(transport.connections[0])]
        assert actions[:2] == ["BootNotification", "StatusNotification"]

    @pytest.mark.asyncio
    async def test_each_cycle_gets_a_fresh_connection(self, transport):
        await make_session(transport).run()
        assert len({id(c) for c in transport.connections}) == 3
        assert all(c.closed for c in transport.connections)


class TestInboundCalls:

    @pytest.mark.asyncio
    async def test_unregistered_action_gets_not_implemented(self):
        transport = FakeTransport(inbound=['[2,"abc","Foo",{}]'])
        metrics = await make_session(transport).run()
        for conn in transport.connections:
            replies = [text for text in conn.sent if json.loads(text)[1] == "abc"]
            assert replies == ['[4,"abc","NotImplemented","Action Foo not implemented",{}]']
        assert metrics.not_implemented_count == 3

    @pytest.mark.asyncio
    async def test_registered_action_gets_one_correlated_result(self):
        transport = FakeTransport(inbound=['[2,"r1","Reset",{"type":"Soft"}]'])
        metrics = await make_session(transport).run()
        for conn in transport.connections:
            replies = [text for text in conn.sent if json.loads(text)[1] == "r1"]
            assert replies == ['[3,"r1",{"status":"Accepted"}]']
        # boot + one reply per cycle
        assert metrics.message_count == 6

    @pytest.mark.asyncio
    async def test_handler_fault_becomes_internal_error(self):
        registry = ActionRegistry()

        def boom(_payload):
            raise ValueError("bad payload")

        registry.register("Boom", boom)
        registry.freeze()
        transport = FakeTransport(inbound=['[2,"x","Boom",{}]'])
        identity = DeviceIdentity(device_id="CP_1_test", protocol_subtype=ProtocolSubtype.OCPP16)
        session = DeviceSession(identity, make_config(), transport, registry=registry)
        metrics = await session.run()
        assert '[4,"x","InternalError","Failed to process Boom",{}]' in transport.connections[0].sent
        assert metrics.handler_faults == 3
        assert metrics.reconnect_count == 3

    @pytest.mark.asyncio
    async def test_malformed_frames_are_dropped(self):
        transport = FakeTransport(inbound=["not json", '[9,"x"]', '[2,"r1","ClearCache",{}]'])
        metrics = await make_session(transport).run()
        assert metrics.decode_failures == 6
        assert metrics.received_count == 9
        assert '[3,"r1",{"status":"Accepted"}]' in transport.connections[0].sent


class TestCorrelation:

    @pytest.mark.asyncio
    async def test_results_resolve_our_calls(self):
        transport = FakeTransport(auto_reply=True)
        metrics = await make_session(transport).run()
        assert metrics.resolved_count == metrics.message_count
        assert metrics.orphan_count == 0

    @pytest.mark.asyncio
    async def test_untracked_result_is_orphan(self):
        transport = FakeTransport(inbound=['[3,"never-sent",{}]', '[4,"also-unknown","GenericError","x",{}]'])
        metrics = await make_session(transport).run()
        assert metrics.orphan_count == 6
        assert metrics.reconnect_count == 3

    @pytest.mark.asyncio
    async def test_call_error_for_our_call_is_counted(self):
        def reject_boot(transport, conn):
            original_send = conn.send

            async def send(data):
                await original_send(data)
                frame = json.loads(data)
                conn.push(json.dumps([4, frame[1], "SecurityError", "rejected", {}]))

            conn.send = send

        metrics = await make_session(FakeTransport(on_open=reject_boot)).run()
        assert metrics.error_replies == 3
        assert metrics.resolved_count == 3

    @pytest.mark.asyncio
    async def test_ids_do_not_carry_across_connections(self):
        def replay_old_boot(transport, conn):
            if len(transport.connections) > 1:
                old_boot_id = json.loads(transport.connections[0].sent[0])[1]
                conn.push(json.dumps([3, old_boot_id, {"status": "Accepted"}]))

        metrics = await make_session(FakeTransport(on_open=replay_old_boot)).run()
        assert metrics.orphan_count == 2
        assert metrics.resolved_count == 0


class TestTimers:

    @pytest.mark.asyncio
    async def test_keepalive_sends_heartbeats(self, transport):
        metrics = await make_session(
            transport, keepalive_interval_ms=10, disconnect_delay_min_ms=65, disconnect_delay_max_ms=65,
        ).run()
        assert metrics.heartbeats_sent >= 3
        actions = [f[2] for f in frames(transport.connections[0])]
        assert actions[0] == "BootNotification"
        assert "Heartbeat" in actions

    @pytest.mark.asyncio
    async def test_keepalive_never_fires_after_close(self, transport):
        session = make_session(transport, keepalive_interval_ms=5, disconnect_delay_min_ms=30, disconnect_delay_max_ms=30)
        metrics = await session.run()
        sent_at_end = [len(c.sent) for c in transport.connections]
        heartbeats_at_end = metrics.heartbeats_sent
        await asyncio.sleep(0.1)
        assert [len(c.sent) for c in transport.connections] == sent_at_end
        assert metrics.heartbeats_sent == heartbeats_at_end

    @pytest.mark.asyncio
    async def test_keepalive_disabled_when_not_shorter_than_disconnect(self, transport):
        metrics = await make_session(transport, keepalive_interval_ms=500).run()
        assert metrics.heartbeats_sent == 0


class TestFailures:

    @pytest.mark.asyncio
    async def test_open_failures_consume_budget(self):
        transport = FakeTransport(fail_opens=2)
        metrics = await make_session(transport).run()
        assert len(transport.opens) == 3
        assert metrics.open_failures == 2
        assert metrics.connect_count == 1
        assert metrics.reconnect_count == 1

    @pytest.mark.asyncio
    async def test_open_timeout_counts_as_failure(self):
        class HangingTransport:
            async def open(self, url, subprotocol):
                await asyncio.sleep(10)

        seen = []
        identity = DeviceIdentity(device_id="CP_1_test", protocol_subtype=ProtocolSubtype.OCPP16)
        session = DeviceSession(
            identity, make_config(open_timeout_ms=20), HangingTransport(),
            on_state_change=lambda old, new: seen.append(new),
        )
        metrics = await asyncio.wait_for(session.run(), timeout=2)
        assert metrics.open_failures == 3
        assert metrics.reconnect_count == 0
        assert seen == [C, D] * 3

    @pytest.mark.asyncio
    async def test_server_close_ends_cycle_early(self):
        transport = FakeTransport(on_open=lambda t, conn: conn.server_close())
        session = make_session(transport, disconnect_delay_min_ms=5000, disconnect_delay_max_ms=5000)
        metrics = await asyncio.wait_for(session.run(), timeout=2)
        assert metrics.reconnect_count == 3

    @pytest.mark.asyncio
    async def test_abnormal_close_is_a_transport_fault(self):
        transport = FakeTransport(on_open=lambda t, conn: conn.server_close(TransportFault("reset by peer")))
        session = make_session(transport, disconnect_delay_min_ms=5000, disconnect_delay_max_ms=5000)
        metrics = await asyncio.wait_for(session.run(), timeout=2)
        assert metrics.reconnect_count == 3
        assert metrics.connect_count == 3

    @pytest.mark.asyncio
    async def test_send_failure_closes_cycle(self):
        def break_send(transport, conn):
            conn.send_error = TransportFault("broken pipe")

        transport = FakeTransport(on_open=break_send)
        session = make_session(transport, disconnect_delay_min_ms=5000, disconnect_delay_max_ms=5000)
        metrics = await asyncio.wait_for(session.run(), timeout=2)
        assert metrics.message_count == 0
        assert metrics.reconnect_count == 3
        assert all(c.closed for c in transport.connections)

    @pytest.mark.asyncio
    async def test_stalled_boot_send_is_cut_off_by_disconnect_delay(self):
        def stall_everything(transport, conn):
            conn.stall_on = lambda frame: True

        seen = []
        identity = DeviceIdentity(device_id="CP_1_test", protocol_subtype=ProtocolSubtype.OCPP16)
        transport = FakeTransport(on_open=stall_everything)
        session = DeviceSession(
            identity,
            make_config(reconnect_count_min=1, reconnect_count_max=1,
                        disconnect_delay_min_ms=50, disconnect_delay_max_ms=50),
            transport,
            on_state_change=lambda old, new: seen.append(new),
        )
        metrics = await asyncio.wait_for(session.run(), timeout=1)
        assert seen == [C, A, CL, D]
        assert metrics.message_count == 0
        assert metrics.reconnect_count == 1
        assert transport.connections[0].closed
        assert session.state == D

    @pytest.mark.asyncio
    async def test_stalled_reply_is_cut_off_by_disconnect_delay(self):
        def stall_replies(transport, conn):
            conn.stall_on = lambda frame: frame[0] != 2

        transport = FakeTransport(inbound=[json.dumps([2, "r1", "Reset", {}])], on_open=stall_replies)
        session = make_session(
            transport, reconnect_count_min=1, reconnect_count_max=1,
            disconnect_delay_min_ms=50, disconnect_delay_max_ms=50,
        )
        metrics = await asyncio.wait_for(session.run(), timeout=1)
        assert [f[2] for f in frames(transport.connections[0])] == ["BootNotification"]
        assert metrics.received_count == 1
        assert metrics.message_count == 1
        assert metrics.reconnect_count == 1
        assert session.state == D


class TestConnectLatency:

    @pytest.mark.asyncio
    async def test_slow_connects_are_counted(self):
        metrics = await make_session(FakeTransport(open_delay=0.03), connect_time_threshold_ms=10).run()
        assert metrics.connect_count == 3
        assert metrics.slow_connects == 3
        assert metrics.max_connect_time_ms >= 25
        assert metrics.connect_time_ms_total >= 3 * 25

    @pytest.mark.asyncio
    async def test_fast_connects_stay_under_default_threshold(self, transport):
        metrics = await make_session(transport).run()
        assert metrics.connect_count == 3
        assert metrics.slow_connects == 0
        assert metrics.max_connect_time_ms < 200

    @pytest.mark.asyncio
    async def test_failed_opens_are_not_timed(self):
        metrics = await make_session(FakeTransport(fail_opens=3)).run()
        assert metrics.connect_time_ms_total == 0
        assert metrics.max_connect_time_ms == 0
        assert metrics.slow_connects == 0
