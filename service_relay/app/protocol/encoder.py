"""
Response encoding for relay commands.
"""

from dataclasses import dataclass
from typing import List

from .records import AnimationMetadata, serialize_records

RESPONSE_SEPARATOR = "::"


@dataclass(frozen=True)
class OutgoingFrame:
    """A response frame, correlated to its request by the echoed key."""
    key: str
    payload: str

    def render(self) -> str:
        return f"{self.key}{RESPONSE_SEPARATOR}{self.payload}"


def encode_scalar(key: str, value: str) -> OutgoingFrame:
    """Encode a scalar store value verbatim."""
    return OutgoingFrame(key=key, payload=value)


def encode_records(key: str, records: List[AnimationMetadata]) -> OutgoingFrame:
    """Encode the full ordered record list."""
    return OutgoingFrame(key=key, payload=serialize_records(records))
