"""CLI JSON output wrapper.

Every ``--json`` payload carries schema metadata (schema_id, schema_version,
producer, produced_at) so scripted consumers can detect format changes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class SchemaStamp:
    """Schema metadata applied to CLI payloads."""

    schema_id: str
    schema_version: int
    producer: str
    produced_at: str


def build_schema_stamp(
    *,
    schema_id: str,
    schema_version: int,
    producer: str | None = None,
    produced_at: str | None = None,
) -> SchemaStamp:
    from macsigner import __version__

    return SchemaStamp(
        schema_id=schema_id,
        schema_version=schema_version,
        producer=producer or f"macsigner-{__version__}",
        produced_at=produced_at or datetime.now(UTC).isoformat(),
    )


def json_response(
    schema_id: str,
    schema_version: int,
    **data: Any,
) -> str:
    """Create schema-wrapped JSON response for CLI output.

    Example:
        >>> json_response("scan_results", 1, root="/tmp", files=[])
        {
          "schema_id": "scan_results",
          "schema_version": 1,
          "producer": "macsigner-0.1.0",
          "produced_at": "2026-01-05T10:30:00+00:00",
          "root": "/tmp",
          "files": []
        }
    """
    stamp = build_schema_stamp(schema_id=schema_id, schema_version=schema_version)
    wrapped = {
        "schema_id": stamp.schema_id,
        "schema_version": stamp.schema_version,
        "producer": stamp.producer,
        "produced_at": stamp.produced_at,
        **data,
    }
    return json.dumps(wrapped, indent=2, default=str)
