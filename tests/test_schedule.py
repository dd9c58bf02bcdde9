from datetime import datetime, timedelta, timezone

import pytest

from sitemigrate.modules.schedule import DelayGate, TimeResolver, build_gate, parse_duration
from sitemigrate.utils.errors import InvalidScheduleFormat, ScheduleNotDue

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestParseDuration:
    @pytest.mark.parametrize("text,expected", [
        ("90s", timedelta(seconds=90)),
        ("15m", timedelta(minutes=15)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("2.5h", timedelta(hours=2, minutes=30)),
        ("+45m", timedelta(minutes=45)),
        ("-30m", timedelta(minutes=-30)),
        ("2d", timedelta(days=2)),
        ("500ms", timedelta(milliseconds=500)),
        ("1500us", timedelta(microseconds=1500)),
        ("0", timedelta(0)),
    ])
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "h", "15", "15x", "1h 30m", "m15", "500ns"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestTimeResolver:
    def setup_method(self):
        self.resolver = TimeResolver()

    @pytest.mark.parametrize("text,offset", [
        ("in 15m", timedelta(minutes=15)),
        ("IN 2h", timedelta(hours=2)),
        ("now+2h", timedelta(hours=2)),
        ("now-30m", timedelta(minutes=-30)),
        ("+1h30m", timedelta(hours=1, minutes=30)),
        ("-5m", timedelta(minutes=-5)),
        ("45m", timedelta(minutes=45)),
    ])
    def test_duration_offsets(self, text, offset):
        assert self.resolver.resolve(text, NOW) == NOW + offset

    def test_epoch_seconds(self):
        assert self.resolver.resolve("1700000000", NOW) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert self.resolver.resolve("1700000000000", NOW) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_short_digit_string_is_not_an_epoch(self):
        with pytest.raises(InvalidScheduleFormat):
            self.resolver.resolve("123456789", NOW)

    def test_rfc3339_utc(self):
        assert self.resolver.resolve("2025-09-01T10:00:00Z", NOW) == datetime(2025, 9, 1, 10, 0, tzinfo=timezone.utc)

    def test_rfc3339_with_offset_is_normalised_to_utc(self):
        result = self.resolver.resolve("2025-09-01T10:00:00+02:00", NOW)
        assert result == datetime(2025, 9, 1, 8, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_naive_layout_is_local_time(self):
        expected = datetime(2025, 9, 1, 10, 0).astimezone().astimezone(timezone.utc)
        assert self.resolver.resolve("2025-09-01 10:00", NOW) == expected

    def test_natural_language_relative(self):
        result = self.resolver.resolve("in 2 hours", NOW)
        assert abs(result - (NOW + timedelta(hours=2))) < timedelta(seconds=1)

    def test_natural_language_is_in_the_future(self):
        assert self.resolver.resolve("tomorrow", NOW) > NOW

    @pytest.mark.parametrize("text", ["", "   ", "qwertyuiop"])
    def test_unrecognised_input(self, text):
        with pytest.raises(InvalidScheduleFormat):
            self.resolver.resolve(text, NOW)

    @pytest.mark.parametrize("text", ["now", "NOW", " now "])
    def test_now(self, text):
        assert self.resolver.resolve(text, NOW) == NOW

    def test_result_is_timezone_aware_utc(self):
        assert self.resolver.resolve("in 1h", NOW).tzinfo == timezone.utc


class TestDelayGate:
    def test_future_gate_is_not_due(self):
        gate = DelayGate(raw="in 2h", when=NOW + timedelta(hours=2))
        assert not gate.is_due(NOW)
        with pytest.raises(ScheduleNotDue) as exc:
            gate.check("example.com", NOW)
        assert exc.value.domain == "example.com"
        assert exc.value.when == gate.when

    def test_past_gate_is_due(self):
        gate = DelayGate(raw="now-1h", when=NOW - timedelta(hours=1))
        assert gate.is_due(NOW)
        gate.check("example.com", NOW)

    def test_build_gate_without_delay(self):
        assert build_gate(None) is None

    def test_build_gate_resolves(self):
        gate = build_gate("in 30m", now=NOW)
        assert gate.when == NOW + timedelta(minutes=30)
        assert gate.raw == "in 30m"
