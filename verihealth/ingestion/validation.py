"""Batch validation for the ingestion endpoint.

A batch is accepted or rejected as a whole: the first bad reading fails the
request and nothing is written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from verihealth.ingestion.errors import IngestValidationError
from verihealth.models.ingest import IngestBatchIn, WearableReadingIn

logger = logging.getLogger("verihealth.ingest.validation")

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class ValidatedReading:
    """A reading that passed validation, paired with the dict it came from.

    ``raw`` is what ends up in the audit trail, untouched.
    """

    reading: WearableReadingIn
    raw: dict[str, Any]


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ())) or "body"
    return f"{loc}: {err.get('msg', 'invalid value')}"


def check_content_type(content_type: str | None) -> None:
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type != JSON_CONTENT_TYPE:
        raise IngestValidationError("content-type must be application/json")


def parse_batch(
    body: bytes,
    content_type: str | None,
    max_batch_size: int | None = None,
) -> list[ValidatedReading]:
    """Parse and validate a raw request body.

    Args:
        body:           Raw request bytes.
        content_type:   Value of the Content-Type header.
        max_batch_size: Reject batches larger than this (None = unbounded).

    Returns:
        Validated readings in request order.

    Raises:
        IngestValidationError: On any malformed input.
    """
    check_content_type(content_type)

    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise IngestValidationError("body is not valid JSON") from exc

    if not isinstance(data, dict):
        raise IngestValidationError("body must be a JSON object")

    try:
        batch = IngestBatchIn.model_validate(data)
    except ValidationError as exc:
        raise IngestValidationError(_first_error(exc)) from exc

    if max_batch_size is not None and len(batch.readings) > max_batch_size:
        raise IngestValidationError(
            f"batch of {len(batch.readings)} readings exceeds limit of {max_batch_size}"
        )

    validated: list[ValidatedReading] = []
    # The model copy has stripped strings; the audit trail keeps the parsed JSON.
    for index, raw in enumerate(data["readings"]):
        try:
            reading = WearableReadingIn.model_validate(raw)
        except ValidationError as exc:
            raise IngestValidationError(
                f"readings[{index}].{_first_error(exc)}"
            ) from exc
        validated.append(ValidatedReading(reading=reading, raw=raw))

    logger.debug("Validated batch of %d readings", len(validated))
    return validated


def distinct_device_ids(readings: list[ValidatedReading]) -> list[str]:
    """Return device ids in first-seen order, without duplicates."""
    return list(dict.fromkeys(v.reading.device_id for v in readings))
