"""
============================================================================
UPTIME MONITOR - VALIDATORS UTILITY
============================================================================
Target validation and parsing for each probe type, plus interval checks.

The same parsers serve two callers: the monitor registry rejects bad
definitions at write time, and the probes re-parse at check time so a
target edited behind the registry's back still fails before any I/O.
============================================================================
"""

import ipaddress
import re
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import validators as external_validators

from config.constants import Limits, Patterns, ProbeType
from config.settings import MonitoringSettings
from exceptions.validation import InvalidIntervalError, InvalidTargetError


# ============================================================================
# URL AND HOST VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL and hostname validation.
    """

    # single-label names such as "localhost" or a container name
    HOST_LABEL_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)
    SCHEME_PATTERN = re.compile(Patterns.URL_SCHEME)

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check if ``url`` is an absolute http(s) URL.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not url or len(url) > Limits.MAX_TARGET_LENGTH:
            return False

        parsed = urlparse(url)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
            return False

        result = external_validators.url(url, simple_host=True)
        return result is True

    @staticmethod
    def is_valid_domain(domain: str) -> bool:
        result = external_validators.domain(domain)
        return result is True

    @staticmethod
    def is_valid_ip(ip: str) -> bool:
        """
        Check if IP address is valid.

        Args:
            ip: IP address to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            ipaddress.ip_address(ip)
            return True
        except ValueError:
            return False

    @classmethod
    def is_valid_hostname(cls, host: str) -> bool:
        """Accept IP literals, fully qualified domains and single-label names."""
        if not host or len(host) > 253:
            return False
        return (
            cls.is_valid_ip(host)
            or cls.is_valid_domain(host)
            or bool(cls.HOST_LABEL_PATTERN.match(host))
        )

    @classmethod
    def has_scheme(cls, target: str) -> bool:
        return bool(cls.SCHEME_PATTERN.match(target))

    @staticmethod
    def extract_hostname(url: str) -> Optional[str]:
        """
        Extract the hostname from a URL.

        Args:
            url: URL to extract from

        Returns:
            Hostname or None when the URL has none
        """
        try:
            return urlparse(url).hostname or None
        except ValueError:
            return None


# ============================================================================
# TARGET PARSERS
# ============================================================================

TCP_PREFIX_PATTERN = re.compile(r"^(?:tcp|https?)://", re.IGNORECASE)


def parse_host_port(target: str) -> Tuple[str, int]:
    """
    Split a TCP target into host and port.

    ``tcp://``, ``http://`` and ``https://`` prefixes are stripped and a
    trailing path is ignored. IPv6 hosts must be bracketed
    (``[::1]:5432``).

    Raises
    ------
    InvalidTargetError
        When the target is not ``host:port`` or the port is out of range.
    """
    value = TCP_PREFIX_PATTERN.sub("", (target or "").strip())
    value = value.split("/", 1)[0]

    if value.startswith("["):
        host, closed, rest = value[1:].partition("]")
        if not closed or not rest.startswith(":"):
            raise InvalidTargetError(
                "TCP monitor target must be in format host:port",
                target=target, probe_type=ProbeType.TCP.value, reason="missing_port"
            )
        port_text = rest[1:]
    else:
        parts = value.split(":")
        if len(parts) != 2:
            raise InvalidTargetError(
                "TCP monitor target must be in format host:port",
                target=target, probe_type=ProbeType.TCP.value, reason="missing_port"
            )
        host, port_text = parts

    host = host.strip()
    if not host:
        raise InvalidTargetError(
            "Host is required",
            target=target, probe_type=ProbeType.TCP.value, reason="invalid_host"
        )

    try:
        port = int(port_text)
    except ValueError:
        port = -1

    if not Limits.MIN_PORT <= port <= Limits.MAX_PORT:
        raise InvalidTargetError(
            "Port must be a number between 1 and 65535",
            target=target, probe_type=ProbeType.TCP.value, reason="invalid_port"
        )

    return host, port


def parse_ping_host(target: str) -> str:
    """
    Reduce a ping target to a bare hostname or IP.

    URLs are accepted and reduced to their host.

    Raises
    ------
    InvalidTargetError
        When no valid host can be extracted.
    """
    value = (target or "").strip()

    if URLValidator.has_scheme(value):
        host = URLValidator.extract_hostname(value)
    else:
        host = value.split("/", 1)[0]
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]

    if not host or not URLValidator.is_valid_hostname(host):
        raise InvalidTargetError(
            "Ping target must be a hostname or IP address",
            target=target, probe_type=ProbeType.PING.value, reason="invalid_host"
        )

    return host


# ============================================================================
# MONITOR VALIDATOR
# ============================================================================

class MonitorValidator:
    """
    Validates monitor definitions before they are written to the registry.
    """

    def __init__(self, settings: MonitoringSettings):
        self.settings = settings

    @staticmethod
    def validate_target(target: str, probe_type: Any) -> str:
        """
        Validate ``target`` for ``probe_type`` and return it stripped.

        Raises
        ------
        InvalidTargetError
        """
        probe_type = ProbeType.parse(probe_type)
        target = (target or "").strip()

        if not target:
            raise InvalidTargetError("Target is required", probe_type=probe_type.value, reason="missing")

        if len(target) > Limits.MAX_TARGET_LENGTH:
            raise InvalidTargetError(
                "Target is too long", target=target, probe_type=probe_type.value, reason="too_long"
            )

        if probe_type == ProbeType.HTTP:
            if not target.lower().startswith(("http://", "https://")):
                raise InvalidTargetError(
                    "HTTP monitor target must start with http:// or https://",
                    target=target, probe_type=probe_type.value, reason="no_scheme"
                )
            if not URLValidator.is_valid_url(target):
                raise InvalidTargetError(
                    "Invalid URL format", target=target, probe_type=probe_type.value, reason="invalid_url"
                )
        elif probe_type == ProbeType.PING:
            parse_ping_host(target)
        elif probe_type == ProbeType.TCP:
            host, _ = parse_host_port(target)
            if not URLValidator.is_valid_hostname(host):
                raise InvalidTargetError(
                    "Invalid host", target=target, probe_type=probe_type.value, reason="invalid_host"
                )

        return target

    def validate_interval(self, interval: Any) -> int:
        """
        Check an interval against the configured floor and ceiling.

        Raises
        ------
        InvalidIntervalError
        """
        try:
            value = int(interval)
        except (TypeError, ValueError):
            value = None

        if value is None or not self.settings.min_interval <= value <= self.settings.max_interval:
            raise InvalidIntervalError(
                f"Interval must be between {self.settings.min_interval} "
                f"and {self.settings.max_interval} seconds",
                interval=interval,
                min_interval=self.settings.min_interval,
                max_interval=self.settings.max_interval
            )

        return value
