import asyncio
import socket

import httpx
import pytest
import pytest_asyncio

from config.constants import CheckStatus, ErrorDetails, ProbeType
from config.settings import MonitoringSettings
from exceptions.monitoring import UnsupportedProbeTypeError
from monitoring import probes as probes_module
from monitoring.probes import (
    HTTPProbe,
    PingProbe,
    ProbeSet,
    TCPProbe,
    create_probes,
    network_error_detail,
)

from helpers import StubProbe, make_monitor


def http_probe(handler, **overrides):
    settings = MonitoringSettings(**overrides)
    return HTTPProbe(settings, transport=httpx.MockTransport(handler))


# ============================================================================
# HTTP
# ============================================================================

class TestHTTPProbe:

    @pytest.mark.asyncio
    async def test_200_is_up(self):
        probe = http_probe(lambda request: httpx.Response(200))
        result = await probe.check(make_monitor(target="http://example.com/health"))

        assert result.status == CheckStatus.UP
        assert result.status_code == 200
        assert result.error_message is None
        assert 0 <= result.response_time < 1000

    @pytest.mark.asyncio
    async def test_404_is_up_by_default(self):
        probe = http_probe(lambda request: httpx.Response(404))
        result = await probe.check(make_monitor())

        assert result.status == CheckStatus.UP
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_404_is_down_when_client_errors_count_as_outage(self):
        probe = http_probe(lambda request: httpx.Response(404), treat_client_errors_as_up=False)
        result = await probe.check(make_monitor())

        assert result.status == CheckStatus.DOWN
        assert result.error_message == "HTTP 404: Not Found"

    @pytest.mark.asyncio
    async def test_503_is_down(self):
        probe = http_probe(lambda request: httpx.Response(503))
        result = await probe.check(make_monitor())

        assert result.status == CheckStatus.DOWN
        assert result.status_code == 503
        assert result.error_message == "HTTP 503: Service Unavailable"

    @pytest.mark.asyncio
    async def test_sends_user_agent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200)

        probe = http_probe(handler, user_agent="probe-test/1.0")
        await probe.check(make_monitor())

        assert seen["ua"] == "probe-test/1.0"

    @pytest.mark.asyncio
    async def test_timeout_is_down(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await http_probe(handler).check(make_monitor())

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.REQUEST_TIMEOUT

    @pytest.mark.asyncio
    async def test_dns_failure_is_down(self):
        def handler(request):
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        result = await http_probe(handler).check(make_monitor(target="http://no-such-host.invalid"))

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.DNS_FAILED

    @pytest.mark.asyncio
    async def test_refused_is_down(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        result = await http_probe(handler).check(make_monitor())

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.CONNECTION_REFUSED

    @pytest.mark.asyncio
    async def test_unclassified_network_error_is_error(self):
        def handler(request):
            raise httpx.ReadError("stream broke", request=request)

        result = await http_probe(handler).check(make_monitor())

        assert result.status == CheckStatus.ERROR
        assert "stream broke" in result.error_message

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_error(self):
        def handler(request):
            raise ValueError("bad handler")

        result = await http_probe(handler).check(make_monitor())

        assert result.status == CheckStatus.ERROR
        assert result.error_message == "bad handler"

    def test_monitor_timeout_overrides_default(self):
        probe = http_probe(lambda request: httpx.Response(200), http_timeout=30.0)

        assert probe.timeout_for(make_monitor(timeout_seconds=5)) == 5.0
        assert probe.timeout_for(make_monitor()) == 30.0


# ============================================================================
# TCP
# ============================================================================

@pytest_asyncio.fixture
async def tcp_server():
    async def handle(reader, writer):
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestTCPProbe:

    @pytest.mark.asyncio
    async def test_open_port_is_up(self, tcp_server):
        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target=f"127.0.0.1:{tcp_server}", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.UP
        assert result.status_code == tcp_server
        assert result.probe_type == ProbeType.TCP

    @pytest.mark.asyncio
    async def test_prefixed_target_is_accepted(self, tcp_server):
        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target=f"tcp://127.0.0.1:{tcp_server}", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.UP

    @pytest.mark.asyncio
    async def test_closed_port_is_refused(self):
        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target=f"127.0.0.1:{_free_port()}", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.DOWN
        assert result.error_message == "Connection refused"

    @pytest.mark.asyncio
    async def test_missing_port_is_error_without_connecting(self, monkeypatch):
        attempts = []

        async def fake_open_connection(*args, **kwargs):
            attempts.append(args)
            raise AssertionError("should not connect")

        monkeypatch.setattr(probes_module.asyncio, "open_connection", fake_open_connection)

        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="nohost", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.ERROR
        assert result.error_message == "TCP monitor target must be in format host:port"
        assert result.response_time == 0.0
        assert attempts == []

    @pytest.mark.asyncio
    async def test_bad_port_is_error(self):
        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="example.com:70000", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.ERROR
        assert "between 1 and 65535" in result.error_message

    @pytest.mark.asyncio
    async def test_slow_connect_times_out(self, monkeypatch):
        async def hanging_open_connection(*args, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(probes_module.asyncio, "open_connection", hanging_open_connection)

        probe = TCPProbe(MonitoringSettings())
        monitor = make_monitor(target="10.255.255.1:80", probe_type=ProbeType.TCP, timeout_seconds=0.05)
        result = await probe.check(monitor)

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.CONNECTION_TIMEOUT

    @pytest.mark.asyncio
    async def test_unresolvable_host_is_dns_failure(self, monkeypatch):
        async def failing_open_connection(*args, **kwargs):
            raise socket.gaierror(-2, "Name or service not known")

        monkeypatch.setattr(probes_module.asyncio, "open_connection", failing_open_connection)

        probe = TCPProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="no-such-host.invalid:443", probe_type=ProbeType.TCP))

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.DNS_FAILED


# ============================================================================
# PING
# ============================================================================

class FakeProcess:
    def __init__(self, returncode=0, output=b"", hang=False):
        self.returncode = returncode
        self.output = output
        self.hang = hang
        self.killed = False

    async def communicate(self):
        if self.hang:
            await asyncio.sleep(10)
        return self.output, None

    def kill(self):
        self.killed = True

    async def wait(self):
        return self.returncode


@pytest.fixture
def fake_ping(monkeypatch):
    """Replace the subprocess launcher; returns the list of launched commands."""
    state = {"process": FakeProcess(), "commands": []}

    async def launcher(*cmd, **kwargs):
        state["commands"].append(list(cmd))
        return state["process"]

    monkeypatch.setattr(probes_module.shutil, "which", lambda command: f"/usr/bin/{command}")
    monkeypatch.setattr(probes_module.asyncio, "create_subprocess_exec", launcher)
    return state


class TestPingProbe:

    @pytest.mark.asyncio
    async def test_reply_is_up_with_parsed_rtt(self, fake_ping):
        fake_ping["process"] = FakeProcess(
            output=b"64 bytes from 127.0.0.1: icmp_seq=1 ttl=64 time=12.3 ms\n"
        )
        probe = PingProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="127.0.0.1", probe_type=ProbeType.PING))

        assert result.status == CheckStatus.UP
        assert result.response_time == 12.3
        assert result.status_code is None
        assert fake_ping["commands"][0][-1] == "127.0.0.1"

    @pytest.mark.asyncio
    async def test_url_target_is_reduced_to_host(self, fake_ping):
        probe = PingProbe(MonitoringSettings())
        await probe.check(make_monitor(target="https://10.0.0.7/status", probe_type=ProbeType.PING))

        assert fake_ping["commands"][0][-1] == "10.0.0.7"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_down(self, fake_ping):
        fake_ping["process"] = FakeProcess(returncode=1)
        probe = PingProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="127.0.0.1", probe_type=ProbeType.PING))

        assert result.status == CheckStatus.DOWN
        assert result.error_message == ErrorDetails.HOST_UNREACHABLE

    @pytest.mark.asyncio
    async def test_hung_process_is_killed(self, fake_ping):
        process = FakeProcess(hang=True)
        fake_ping["process"] = process
        probe = PingProbe(MonitoringSettings())
        probe.PROCESS_GRACE = 0.0

        monitor = make_monitor(target="127.0.0.1", probe_type=ProbeType.PING, timeout_seconds=0.05)
        result = await probe.check(monitor)

        assert result.status == CheckStatus.DOWN
        assert process.killed is True

    @pytest.mark.asyncio
    async def test_resolution_failure_is_error(self, fake_ping, monkeypatch):
        async def failing_resolve(host):
            raise socket.gaierror(-2, "Name or service not known")

        monkeypatch.setattr(PingProbe, "resolve", staticmethod(failing_resolve))
        probe = PingProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="no-such-host.invalid", probe_type=ProbeType.PING))

        assert result.status == CheckStatus.ERROR
        assert result.error_message == ErrorDetails.DNS_FAILED
        assert fake_ping["commands"] == []

    @pytest.mark.asyncio
    async def test_missing_binary_is_error(self, monkeypatch):
        monkeypatch.setattr(probes_module.shutil, "which", lambda command: None)
        probe = PingProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="127.0.0.1", probe_type=ProbeType.PING))

        assert result.status == CheckStatus.ERROR
        assert result.error_message == ErrorDetails.PING_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_invalid_target_is_error(self, fake_ping):
        probe = PingProbe(MonitoringSettings())
        result = await probe.check(make_monitor(target="not a host!", probe_type=ProbeType.PING))

        assert result.status == CheckStatus.ERROR
        assert fake_ping["commands"] == []

    def test_parse_rtt(self):
        assert PingProbe.parse_rtt("Reply from 1.1.1.1: bytes=32 time=14ms TTL=57") == 14.0
        assert PingProbe.parse_rtt("Reply from 1.1.1.1: bytes=32 time<1ms TTL=57") == 1.0
        assert PingProbe.parse_rtt("Request timed out.") is None


# ============================================================================
# ERROR CLASSIFICATION / PROBE SET
# ============================================================================

def test_network_error_detail_follows_cause_chain():
    try:
        try:
            raise socket.gaierror(-3, "Temporary failure")
        except socket.gaierror as inner:
            raise OSError("connect failed") from inner
    except OSError as outer:
        assert network_error_detail(outer) == ErrorDetails.DNS_FAILED

    assert network_error_detail(ConnectionResetError()) == ErrorDetails.CONNECTION_REFUSED
    assert network_error_detail(OSError("something else")) is None


class TestProbeSet:

    def test_create_probes_covers_every_type(self):
        probe_set = create_probes(MonitoringSettings())

        assert set(probe_set.types) == {ProbeType.HTTP, ProbeType.PING, ProbeType.TCP}
        assert "https" in probe_set
        assert "dns" not in probe_set

    def test_unknown_type_raises(self):
        probe_set = create_probes(MonitoringSettings())

        with pytest.raises(UnsupportedProbeTypeError):
            probe_set.get("dns")

    @pytest.mark.asyncio
    async def test_check_dispatches_by_type(self):
        settings = MonitoringSettings()
        tcp = StubProbe(settings, probe_type=ProbeType.TCP)
        http = StubProbe(settings, probe_type=ProbeType.HTTP)
        probe_set = ProbeSet([tcp, http])

        await probe_set.check(make_monitor(id=3, probe_type="tcp"))

        assert [c[0] for c in tcp.calls] == [3]
        assert http.calls == []

    @pytest.mark.asyncio
    async def test_check_many_returns_one_result_per_monitor(self):
        settings = MonitoringSettings()
        failing = StubProbe(settings, probe_type=ProbeType.TCP, exc=RuntimeError("boom"))
        probe_set = ProbeSet([StubProbe(settings), failing])
        monitors = [
            make_monitor(id=1),
            make_monitor(id=2, probe_type=ProbeType.TCP),
            make_monitor(id=3),
        ]

        results = await probe_set.check_many(monitors, concurrency=2, delay_between_batches=0)

        assert [r.monitor_id for r in results] == [1, 2, 3]
        assert [r.status for r in results] == [CheckStatus.UP, CheckStatus.ERROR, CheckStatus.UP]
