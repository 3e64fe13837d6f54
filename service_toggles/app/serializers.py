"""
Value-set serializers used by backends that persist encoded documents.
"""

import json
from typing import Any, Protocol


class Serializer(Protocol):
    """Encode/decode a value-set or rules document to text."""

    def dumps(self, value: Any) -> str:
        ...

    def loads(self, text: str) -> Any:
        ...


class JSONSerializer:
    """Default serializer: compact JSON."""

    def dumps(self, value: Any) -> str:
        return json.dumps(value, separators=(",", ":"))

    def loads(self, text: str) -> Any:
        if isinstance(text, (bytes, bytearray)):
            text = text.decode("utf-8")
        return json.loads(text)
