"""
Structured records held in store lists.
"""

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import RecordDecodeError

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


class AnimationMetadata(BaseModel):
    """One entry of a queued animation list."""

    model_config = ConfigDict(strict=True, extra="ignore")

    name: str
    repeat: int = Field(ge=INT32_MIN, le=INT32_MAX)
    text: Optional[str] = None


def decode_entries(entries: List[str]) -> List[AnimationMetadata]:
    """Decode every raw list entry, failing the whole list on the first bad one."""
    records = []
    for index, entry in enumerate(entries):
        try:
            records.append(AnimationMetadata.model_validate_json(entry))
        except ValidationError as e:
            raise RecordDecodeError(
                f"Failed to decode list entry {index}",
                details={"index": index, "error_count": e.error_count(), "error": str(e)}
            )
    return records


def serialize_records(records: List[AnimationMetadata]) -> str:
    """Serialize records as a compact JSON array, preserving order."""
    return json.dumps(
        [record.model_dump() for record in records],
        separators=(",", ":"),
        ensure_ascii=False
    )
