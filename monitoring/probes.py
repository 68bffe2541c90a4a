"""
============================================================================
UPTIME MONITOR - PROBE EXECUTORS
============================================================================
One executor per probe type. Each turns a monitor into a ``CheckResult``
without persisting anything; the scheduler hands results to the sink.

ProbeSet                  ← maps ProbeType → executor, dispatches by type
├── HTTPProbe             ← GET via httpx, classifies the status code
├── PingProbe             ← one echo request via the system ping binary
└── TCPProbe              ← raw connect via asyncio.open_connection

Failures never escape ``check``: network problems become DOWN results,
anything that prevents evaluating the target becomes an ERROR result.
============================================================================
"""

import asyncio
import ipaddress
import os
import re
import shutil
import socket
import time
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import httpx

from config.constants import Defaults, ErrorDetails, Patterns, ProbeType
from config.settings import MonitoringSettings
from exceptions.monitoring import UnsupportedProbeTypeError
from exceptions.validation import InvalidTargetError
from monitoring.results import CheckResult
from utils.helpers import BatchProcessor, TimeHelper
from utils.logger import get_logger
from utils.validators import parse_host_port, parse_ping_host


logger = get_logger(__name__)


DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
    "name resolution",
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and its causes, following __cause__ then __context__."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def network_error_detail(exc: BaseException) -> Optional[str]:
    """
    Map a network failure to one of the known error details.

    Returns None when the failure fits no known category.
    """
    for err in _exception_chain(exc):
        if isinstance(err, socket.gaierror):
            return ErrorDetails.DNS_FAILED
        if isinstance(err, (ConnectionRefusedError, ConnectionResetError)):
            return ErrorDetails.CONNECTION_REFUSED

    text = str(exc).lower()
    if any(marker in text for marker in DNS_FAILURE_MARKERS):
        return ErrorDetails.DNS_FAILED
    if "refused" in text or "reset" in text:
        return ErrorDetails.CONNECTION_REFUSED

    return None


async def _run_in_batches(check, monitors: Sequence, concurrency: int, delay: float) -> List[CheckResult]:
    """Run ``check`` over ``monitors`` in batches of ``concurrency``."""

    async def guarded(monitor) -> CheckResult:
        started = time.perf_counter()
        try:
            return await check(monitor)
        except Exception as e:
            logger.exception(f"Batch check failed for monitor {getattr(monitor, 'id', None)}")
            return CheckResult.error(monitor, str(e) or type(e).__name__, TimeHelper.elapsed_ms(started))

    async def run_batch(batch):
        return await asyncio.gather(*(guarded(m) for m in batch))

    return await BatchProcessor.process_in_batches(monitors, concurrency, run_batch, delay)


# ============================================================================
# BASE PROBE
# ============================================================================

class BaseProbe:
    """
    Common plumbing for probe executors.

    Subclasses set ``probe_type`` and ``default_timeout_field`` and
    implement ``check``.
    """

    probe_type: ProbeType
    default_timeout_field: str

    def __init__(self, settings: MonitoringSettings):
        self.settings = settings

    def timeout_for(self, monitor) -> float:
        """The monitor's own timeout, else the configured default for this type."""
        timeout = getattr(monitor, "timeout_seconds", None)
        if timeout:
            return float(timeout)
        return float(getattr(self.settings, self.default_timeout_field))

    async def check(self, monitor) -> CheckResult:
        raise NotImplementedError

    async def check_many(
        self,
        monitors: Sequence,
        concurrency: int = Defaults.BATCH_CONCURRENCY,
        delay_between_batches: float = Defaults.BATCH_DELAY
    ) -> List[CheckResult]:
        """
        Check several monitors, ``concurrency`` at a time.

        Results come back in input order, one per monitor.
        """
        return await _run_in_batches(self.check, monitors, concurrency, delay_between_batches)


# ============================================================================
# HTTP PROBE
# ============================================================================

class HTTPProbe(BaseProbe):
    """
    HTTP / HTTPS reachability via a GET request.

    2xx-3xx is UP. 4xx is UP while ``treat_client_errors_as_up`` is set
    (the server answered), DOWN otherwise. 5xx is DOWN.

    Parameters
    ----------
    settings : MonitoringSettings
    transport : httpx.AsyncBaseTransport, optional
        Replaces the network transport (``httpx.MockTransport`` in tests).
    """

    probe_type = ProbeType.HTTP
    default_timeout_field = "http_timeout"

    def __init__(self, settings: MonitoringSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings)
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=self.settings.follow_redirects,
            verify=self.settings.verify_ssl,
            headers={"User-Agent": self.settings.user_agent},
            transport=self._transport,
        )

    def classify(self, monitor, response: httpx.Response, elapsed: float) -> CheckResult:
        code = response.status_code
        detail = ErrorDetails.HTTP_STATUS.format(code=code, reason=response.reason_phrase or "Unknown")

        if 200 <= code < 400:
            return CheckResult.up(monitor, elapsed, status_code=code)

        if 400 <= code < 500 and self.settings.treat_client_errors_as_up:
            return CheckResult.up(monitor, elapsed, status_code=code)

        return CheckResult.down(monitor, detail, elapsed, status_code=code)

    async def check(self, monitor) -> CheckResult:
        """
        GET the monitor's target and classify the outcome.

        Parameters
        ----------
        monitor : Monitor
            Row (or any object) with ``id``, ``target``, ``probe_type``
            and ``timeout_seconds``.

        Returns
        -------
        CheckResult
        """
        timeout = self.timeout_for(monitor)
        start_time = time.perf_counter()

        try:
            async with self._client(timeout) as client:
                response = await client.get(monitor.target)

        except httpx.TimeoutException:
            elapsed = TimeHelper.elapsed_ms(start_time)
            logger.warning(f"[HTTP] {monitor.target} → timed out after {timeout}s")
            return CheckResult.down(monitor, ErrorDetails.REQUEST_TIMEOUT, elapsed)

        except httpx.NetworkError as e:
            elapsed = TimeHelper.elapsed_ms(start_time)
            detail = network_error_detail(e)
            logger.warning(f"[HTTP] {monitor.target} → {detail or e}")
            if detail is None:
                return CheckResult.error(monitor, str(e)[:500] or type(e).__name__, elapsed)
            return CheckResult.down(monitor, detail, elapsed)

        except Exception as e:
            elapsed = TimeHelper.elapsed_ms(start_time)
            logger.warning(f"[HTTP] {monitor.target} → check error: {e}")
            return CheckResult.error(monitor, str(e)[:500] or type(e).__name__, elapsed)

        elapsed = TimeHelper.elapsed_ms(start_time)
        logger.debug(f"[HTTP] {monitor.target} → {response.status_code} in {elapsed:.1f}ms")
        return self.classify(monitor, response, elapsed)


# ============================================================================
# PING PROBE
# ============================================================================

class PingProbe(BaseProbe):
    """
    ICMP reachability through the system ``ping`` binary.

    Raw ICMP sockets need privileges; the setuid/capability-enabled
    system binary does not.
    """

    probe_type = ProbeType.PING
    default_timeout_field = "ping_timeout"

    RTT_PATTERN = re.compile(Patterns.PING_RTT)
    # extra seconds granted to the subprocess beyond ping's own deadline
    PROCESS_GRACE = 2.0

    def __init__(self, settings: MonitoringSettings, command: str = "ping"):
        super().__init__(settings)
        self.command = command

    def build_command(self, address: str, timeout: float) -> List[str]:
        if os.name == "nt":
            wait_ms = max(int(timeout * 1000), 1)
            return [self.command, "-n", "1", "-w", str(wait_ms), address]

        wait_seconds = max(int(round(timeout)), 1)
        return [self.command, "-c", "1", "-W", str(wait_seconds), address]

    @staticmethod
    async def resolve(host: str) -> str:
        """Resolve ``host`` to an address; IP literals pass through."""
        try:
            ipaddress.ip_address(host)
            return host
        except ValueError:
            pass

        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_DGRAM)
        return infos[0][4][0]

    @classmethod
    def parse_rtt(cls, output: str) -> Optional[float]:
        match = cls.RTT_PATTERN.search(output)
        if match is None:
            return None
        return round(float(match.group(1)), 2)

    async def check(self, monitor) -> CheckResult:
        try:
            host = parse_ping_host(monitor.target)
        except InvalidTargetError as e:
            return CheckResult.error(monitor, e.message, response_time=0.0)

        if shutil.which(self.command) is None:
            logger.error(f"[PING] '{self.command}' binary not found on PATH")
            return CheckResult.error(monitor, ErrorDetails.PING_UNAVAILABLE, response_time=0.0)

        timeout = self.timeout_for(monitor)
        start_time = time.perf_counter()

        try:
            address = await self.resolve(host)
        except (socket.gaierror, UnicodeError) as e:
            logger.warning(f"[PING] {host} → resolution failed: {e}")
            return CheckResult.error(monitor, ErrorDetails.DNS_FAILED, TimeHelper.elapsed_ms(start_time))

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(address, timeout),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            logger.error(f"[PING] could not launch ping: {e}")
            return CheckResult.error(monitor, f"Could not run ping: {e}", TimeHelper.elapsed_ms(start_time))

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout + self.PROCESS_GRACE)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"[PING] {host} → no reply within {timeout}s")
            return CheckResult.down(monitor, ErrorDetails.HOST_UNREACHABLE, TimeHelper.elapsed_ms(start_time))

        elapsed = TimeHelper.elapsed_ms(start_time)

        if process.returncode != 0:
            logger.warning(f"[PING] {host} → unreachable (exit {process.returncode})")
            return CheckResult.down(monitor, ErrorDetails.HOST_UNREACHABLE, elapsed)

        output = (stdout or b"").decode(errors="replace")
        rtt = self.parse_rtt(output)
        logger.debug(f"[PING] {host} → alive, rtt={rtt}ms")
        return CheckResult.up(monitor, rtt if rtt is not None else elapsed)


# ============================================================================
# TCP PROBE
# ============================================================================

class TCPProbe(BaseProbe):
    """
    Raw TCP connect check.

    The target is ``host:port`` (``tcp://``/``http(s)://`` prefixes
    allowed). A malformed target yields an ERROR result before any
    connection is attempted. On success the port is stored as the
    status code.
    """

    probe_type = ProbeType.TCP
    default_timeout_field = "tcp_timeout"

    async def check(self, monitor) -> CheckResult:
        try:
            host, port = parse_host_port(monitor.target)
        except InvalidTargetError as e:
            logger.warning(f"[TCP] malformed target {monitor.target!r}: {e.message}")
            return CheckResult.error(monitor, e.message, response_time=0.0)

        timeout = self.timeout_for(monitor)
        start_time = time.perf_counter()

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)

        except asyncio.TimeoutError:
            logger.warning(f"[TCP] {host}:{port} → timed out after {timeout}s")
            return CheckResult.down(monitor, ErrorDetails.CONNECTION_TIMEOUT, TimeHelper.elapsed_ms(start_time))

        except OSError as e:
            elapsed = TimeHelper.elapsed_ms(start_time)
            detail = network_error_detail(e) or str(e)[:500] or type(e).__name__
            logger.warning(f"[TCP] {host}:{port} → {detail}")
            return CheckResult.down(monitor, detail, elapsed)

        except Exception as e:
            logger.warning(f"[TCP] {host}:{port} → check error: {e}")
            return CheckResult.error(monitor, str(e)[:500] or type(e).__name__, TimeHelper.elapsed_ms(start_time))

        elapsed = TimeHelper.elapsed_ms(start_time)

        # only connectivity matters; close right away
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"[TCP] {host}:{port} → close error ignored: {e}")

        logger.debug(f"[TCP] {host}:{port} → connected in {elapsed:.1f}ms")
        return CheckResult.up(monitor, elapsed, status_code=port)


# ============================================================================
# PROBE SET
# ============================================================================

class ProbeSet:
    """
    Registry of executors keyed by probe type.

    Adding a probe type means adding a ``BaseProbe`` subclass and
    registering an instance here.
    """

    def __init__(self, probes: Iterable[BaseProbe]):
        self._probes: Dict[ProbeType, BaseProbe] = {}
        for probe in probes:
            self.register(probe)

    def register(self, probe: BaseProbe) -> None:
        self._probes[probe.probe_type] = probe

    def get(self, probe_type) -> BaseProbe:
        """
        Raises
        ------
        UnsupportedProbeTypeError
            When nothing is registered for ``probe_type``.
        """
        try:
            return self._probes[ProbeType.parse(probe_type)]
        except (KeyError, ValueError):
            raise UnsupportedProbeTypeError(
                f"{ErrorDetails.UNSUPPORTED_PROBE}: {probe_type}",
                probe_type=str(probe_type)
            )

    @property
    def types(self) -> List[ProbeType]:
        return list(self._probes)

    def __contains__(self, probe_type) -> bool:
        try:
            return ProbeType.parse(probe_type) in self._probes
        except ValueError:
            return False

    async def check(self, monitor) -> CheckResult:
        """Dispatch to the executor for the monitor's type."""
        return await self.get(monitor.probe_type).check(monitor)

    async def check_many(
        self,
        monitors: Sequence,
        concurrency: int = Defaults.BATCH_CONCURRENCY,
        delay_between_batches: float = Defaults.BATCH_DELAY
    ) -> List[CheckResult]:
        """Batch check monitors of mixed types; see ``BaseProbe.check_many``."""
        return await _run_in_batches(self.check, monitors, concurrency, delay_between_batches)


def create_probes(
    settings: MonitoringSettings,
    http_transport: Optional[httpx.AsyncBaseTransport] = None
) -> ProbeSet:
    """Build the standard HTTP / Ping / TCP executors."""
    return ProbeSet([
        HTTPProbe(settings, transport=http_transport),
        PingProbe(settings),
        TCPProbe(settings),
    ])
