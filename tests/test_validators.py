import pytest

from config.constants import ProbeType
from config.settings import MonitoringSettings
from exceptions.validation import InvalidIntervalError, InvalidTargetError
from utils.validators import MonitorValidator, URLValidator, parse_host_port, parse_ping_host


class TestParseHostPort:

    @pytest.mark.parametrize("target,expected", [
        ("example.com:443", ("example.com", 443)),
        ("tcp://db.internal:5432", ("db.internal", 5432)),
        ("https://example.com:8443/health", ("example.com", 8443)),
        ("[::1]:6379", ("::1", 6379)),
        (" 10.0.0.5:22 ", ("10.0.0.5", 22)),
    ])
    def test_valid_targets(self, target, expected):
        assert parse_host_port(target) == expected

    @pytest.mark.parametrize("target,reason", [
        ("nohost", "missing_port"),
        ("a:b:c", "missing_port"),
        ("[::1]", "missing_port"),
        (":80", "invalid_host"),
        ("example.com:0", "invalid_port"),
        ("example.com:http", "invalid_port"),
    ])
    def test_invalid_targets(self, target, reason):
        with pytest.raises(InvalidTargetError) as exc_info:
            parse_host_port(target)

        assert exc_info.value.details["reason"] == reason


class TestParsePingHost:

    @pytest.mark.parametrize("target,expected", [
        ("example.com", "example.com"),
        ("https://example.com/status", "example.com"),
        ("192.168.1.1", "192.168.1.1"),
        ("localhost", "localhost"),
        ("[2001:db8::1]", "2001:db8::1"),
    ])
    def test_reduces_to_host(self, target, expected):
        assert parse_ping_host(target) == expected

    @pytest.mark.parametrize("target", ["", "bad host!", "http://"])
    def test_rejects_garbage(self, target):
        with pytest.raises(InvalidTargetError):
            parse_ping_host(target)


class TestURLValidator:

    def test_urls(self):
        assert URLValidator.is_valid_url("https://example.com/path?q=1")
        assert URLValidator.is_valid_url("http://localhost:8080/health")
        assert not URLValidator.is_valid_url("ftp://example.com")
        assert not URLValidator.is_valid_url("example.com")

    def test_hostnames(self):
        assert URLValidator.is_valid_hostname("example.com")
        assert URLValidator.is_valid_hostname("db")
        assert URLValidator.is_valid_hostname("::1")
        assert not URLValidator.is_valid_hostname("under_score!")


class TestMonitorValidator:

    def test_target_is_stripped(self):
        assert MonitorValidator.validate_target("  https://example.com  ", ProbeType.HTTP) == "https://example.com"

    def test_http_requires_scheme(self):
        with pytest.raises(InvalidTargetError) as exc_info:
            MonitorValidator.validate_target("example.com", "http")

        assert exc_info.value.details["reason"] == "no_scheme"

    def test_interval_bounds(self):
        validator = MonitorValidator(MonitoringSettings(min_interval=10, max_interval=600, default_interval=60))

        assert validator.validate_interval(10) == 10
        assert validator.validate_interval("600") == 600

        for bad in (9, 601, "soon", None):
            with pytest.raises(InvalidIntervalError):
                validator.validate_interval(bad)
