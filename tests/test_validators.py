# tests/test_validators.py

import pytest

from triptrack.Core.exceptions import ValidationError
from triptrack.Services.validators import coerce_coordinate, parse_device_ids


class TestCoerceCoordinate:
    @pytest.mark.parametrize("value,expected", [(41, 41.0), (41.5, 41.5), ("41.0082", 41.0082), (" -29.5 ", -29.5)])
    def test_accepted(self, value, expected) -> None:
        assert coerce_coordinate("lat", value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "abc", [41.0], float("inf"), "nan"])
    def test_rejected(self, value) -> None:
        with pytest.raises(ValidationError) as exc_info:
            coerce_coordinate("lng", value)
        assert exc_info.value.field == "lng"

    def test_missing_message(self) -> None:
        with pytest.raises(ValidationError, match="lat is required"):
            coerce_coordinate("lat", None)


class TestParseDeviceIds:
    def test_comma_separated(self) -> None:
        assert parse_device_ids(" bike1, bike2 ,,bike1") == ["bike1", "bike2"]

    def test_iterable(self) -> None:
        assert parse_device_ids(["bike1", "bike2,bike3"]) == ["bike1", "bike2", "bike3"]

    @pytest.mark.parametrize("raw", [None, "", " , ", []])
    def test_default(self, raw) -> None:
        assert parse_device_ids(raw, default="default") == ["default"]
        assert parse_device_ids(raw) == []
