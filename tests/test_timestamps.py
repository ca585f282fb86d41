"""
Tests for timestamp conversion at the storage boundary.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from splitledger.models.timestamps import millis_to_datetime, now_millis, to_epoch_millis


NEW_YEAR_2024 = 1704067200000


class FakeDriverTimestamp:
    """Shaped like a document store driver timestamp."""

    def __init__(self, millis):
        self._millis = millis

    def ToMilliseconds(self):
        return self._millis


class FakeJsTimestamp:
    def __init__(self, value):
        self._value = value

    def toDate(self):
        return self._value


class TestToEpochMillis:
    """Tests for to_epoch_millis."""

    def test_int_passthrough(self):
        assert to_epoch_millis(NEW_YEAR_2024) == NEW_YEAR_2024

    def test_float_and_decimal_rounded(self):
        assert to_epoch_millis(1.6) == 2
        assert to_epoch_millis(Decimal("1704067200000.4")) == NEW_YEAR_2024

    def test_aware_datetime(self):
        value = datetime(2024, 1, 1, 5, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        assert to_epoch_millis(value) == NEW_YEAR_2024

    def test_naive_datetime_is_utc(self):
        assert to_epoch_millis(datetime(2024, 1, 1)) == NEW_YEAR_2024

    def test_date_is_midnight_utc(self):
        assert to_epoch_millis(date(2024, 1, 1)) == NEW_YEAR_2024

    def test_numeric_string(self):
        assert to_epoch_millis(" 1704067200000 ") == NEW_YEAR_2024

    def test_iso_string_with_z(self):
        assert to_epoch_millis("2024-01-01T00:00:00Z") == NEW_YEAR_2024

    def test_driver_timestamp_objects(self):
        """Test objects exposing driver conversion methods."""
        assert to_epoch_millis(FakeDriverTimestamp(NEW_YEAR_2024)) == NEW_YEAR_2024
        assert to_epoch_millis(FakeJsTimestamp(datetime(2024, 1, 1))) == NEW_YEAR_2024

    @pytest.mark.parametrize("raw", [None, True, "", "yesterday", float("nan"), object()])
    def test_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            to_epoch_millis(raw)

    def test_round_trip_to_datetime(self):
        assert millis_to_datetime(NEW_YEAR_2024) == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_now_is_recent(self):
        now = now_millis()
        assert abs(now - to_epoch_millis(datetime.now(timezone.utc))) < 5000


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
