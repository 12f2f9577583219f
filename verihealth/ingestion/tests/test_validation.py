"""Tests for batch parsing and per-reading validation."""

from __future__ import annotations

import json
from datetime import timezone

import pytest

from verihealth.ingestion.errors import IngestValidationError
from verihealth.ingestion.tests.conftest import DEVICE_A, DEVICE_B, batch_body, reading
from verihealth.ingestion.validation import check_content_type, distinct_device_ids, parse_batch

JSON = "application/json"


class TestContentType:
    @pytest.mark.parametrize("value", ["application/json", "application/json; charset=utf-8"])
    def test_json_accepted(self, value: str) -> None:
        check_content_type(value)

    @pytest.mark.parametrize("value", [None, "", "text/plain", "application/x-www-form-urlencoded"])
    def test_other_types_rejected(self, value: str | None) -> None:
        with pytest.raises(IngestValidationError):
            check_content_type(value)


class TestParseBatch:
    def test_valid_batch(self) -> None:
        result = parse_batch(batch_body(reading(), reading(id="r-2", type="spo2")), JSON)

        assert [v.reading.id for v in result] == ["r-1", "r-2"]
        assert result[0].reading.device_id == DEVICE_A
        assert result[0].reading.timestamp.tzinfo is not None

    def test_raw_dict_is_kept_verbatim(self) -> None:
        original = reading(raw={"sensor": "ppg", "confidence": 0.93})
        result = parse_batch(batch_body(original), JSON)

        assert result[0].raw == original

    def test_naive_timestamp_taken_as_utc(self) -> None:
        result = parse_batch(batch_body(reading(timestamp="2026-02-23T08:00:00")), JSON)
        assert result[0].reading.timestamp.tzinfo == timezone.utc

    def test_not_json(self) -> None:
        with pytest.raises(IngestValidationError, match="not valid JSON"):
            parse_batch(b"{readings:", JSON)

    def test_not_an_object(self) -> None:
        with pytest.raises(IngestValidationError, match="JSON object"):
            parse_batch(json.dumps([reading()]).encode(), JSON)

    def test_missing_readings(self) -> None:
        with pytest.raises(IngestValidationError, match="readings"):
            parse_batch(b'{"uploadedAt": "2026-02-23T08:00:00Z"}', JSON)

    def test_empty_readings(self) -> None:
        with pytest.raises(IngestValidationError, match="readings"):
            parse_batch(b'{"readings": []}', JSON)

    def test_wrong_content_type(self) -> None:
        with pytest.raises(IngestValidationError, match="content-type"):
            parse_batch(batch_body(reading()), "text/plain")

    def test_oversized_batch(self) -> None:
        body = batch_body(*[reading(id=f"r-{i}") for i in range(4)])
        with pytest.raises(IngestValidationError, match="exceeds limit"):
            parse_batch(body, JSON, max_batch_size=3)

    def test_bad_reading_is_located(self) -> None:
        body = batch_body(reading(), reading(id="r-2", timestamp="not-a-time"))
        with pytest.raises(IngestValidationError) as exc_info:
            parse_batch(body, JSON)
        assert exc_info.value.message.startswith("readings[1].timestamp")
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        "bad",
        [
            reading(device_id=""),
            reading(type=""),
            reading(timestamp=""),
            reading(timestamp=1708675200),
            {"deviceId": DEVICE_A, "type": "heart_rate", "value": 72},
        ],
    )
    def test_required_fields(self, bad: dict) -> None:
        with pytest.raises(IngestValidationError):
            parse_batch(batch_body(bad), JSON)

    def test_patient_id_is_accepted_but_not_trusted_here(self) -> None:
        result = parse_batch(batch_body(reading(patientId="someone-else")), JSON)
        assert result[0].reading.patient_id == "someone-else"

    def test_raw_is_the_posted_json_not_the_model_copy(self) -> None:
        original = reading(**{" note ": "  padded  "}, type="  heart_rate  ")
        result = parse_batch(batch_body(original), JSON)

        assert result[0].raw == original
        assert result[0].reading.type == "heart_rate"

    @pytest.mark.parametrize(
        "extra",
        [{"unit": 7}, {"raw": [1, 2, 3]}, {"id": 42}, {"raw": "opaque"}, {"patientId": 9}],
    )
    def test_optional_fields_accept_any_json(self, extra: dict) -> None:
        original = reading(**extra)
        result = parse_batch(batch_body(original), JSON)

        assert result[0].raw == original


def test_distinct_device_ids_keep_first_seen_order() -> None:
    readings = parse_batch(
        batch_body(
            reading(device_id=DEVICE_B, id="1"),
            reading(device_id=DEVICE_A, id="2"),
            reading(device_id=DEVICE_B, id="3"),
        ),
        JSON,
    )
    assert distinct_device_ids(readings) == [DEVICE_B, DEVICE_A]
