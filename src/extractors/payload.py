"""
Classification of RPC return payloads.

Depending on how a stored procedure is declared, the RPC backend returns a
JSON object, a JSON array (``returns table`` / ``setof``), null, or now and
then the JSON document encoded as a string.  ``decode_payload`` sorts all
of these into one of three kinds before any field is read.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class PayloadKind(Enum):
    OBJECT = "object"
    ARRAY = "array"
    EMPTY = "empty"


@dataclass(frozen=True)
class Payload:
    """A decoded RPC payload: a dict (OBJECT), a list (ARRAY) or nothing (EMPTY)."""

    kind: PayloadKind
    value: Any = None

    def rows(self) -> List[Any]:
        """Payload as a list of rows."""
        if self.kind is PayloadKind.ARRAY:
            return list(self.value)
        if self.kind is PayloadKind.OBJECT:
            return [self.value]
        return []

    def first(self) -> Optional[Any]:
        """First row, or None.  ``returns table`` functions yield a one-row array."""
        rows = self.rows()
        return rows[0] if rows else None

    def as_json(self) -> Any:
        """JSON-ready body; EMPTY becomes ``{}``."""
        return self.value if self.kind is not PayloadKind.EMPTY else {}


EMPTY = Payload(PayloadKind.EMPTY)


def decode_payload(data: Any) -> Payload:
    """Classify a raw RPC result.  Never raises."""
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8", errors="replace")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return EMPTY

    if isinstance(data, list):
        return Payload(PayloadKind.ARRAY, data)
    if isinstance(data, dict):
        return Payload(PayloadKind.OBJECT, data)
    return EMPTY
