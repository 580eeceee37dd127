"""Tagged JSON value used for loosely-typed stream payloads.

Payloads arriving on the event stream are decoded once into a ``JSONValue``
tree. Handlers then read fields through typed accessors that fall back to a
caller-supplied default instead of raising when the shape is unexpected.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class JSONKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass
class JSONValue:
    kind: JSONKind
    value: Any = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def null(cls) -> "JSONValue":
        return cls(JSONKind.NULL)

    @classmethod
    def from_python(cls, obj: Any) -> "JSONValue":
        """Wrap a decoded JSON document (dict/list/str/number/bool/None)."""
        if obj is None:
            return cls(JSONKind.NULL)
        # bool before number: bool is an int subclass
        if isinstance(obj, bool):
            return cls(JSONKind.BOOL, obj)
        if isinstance(obj, (int, float)):
            return cls(JSONKind.NUMBER, obj)
        if isinstance(obj, str):
            return cls(JSONKind.STRING, obj)
        if isinstance(obj, (list, tuple)):
            return cls(JSONKind.ARRAY, [cls.from_python(item) for item in obj])
        if isinstance(obj, dict):
            return cls(
                JSONKind.OBJECT,
                {str(key): cls.from_python(item) for key, item in obj.items()},
            )
        raise TypeError(f"Unsupported JSON value type: {type(obj).__name__}")

    @classmethod
    def parse(cls, text: str) -> "JSONValue":
        """Decode ``text``; an empty or whitespace-only string is ``null``.

        Raises ``json.JSONDecodeError`` on malformed input, ``ValueError``
        for numbers past the interpreter's digit limit and ``RecursionError``
        for documents nested too deeply.
        """
        if not text.strip():
            return cls(JSONKind.NULL)
        return cls.from_python(json.loads(text))

    def to_python(self) -> Any:
        if self.kind == JSONKind.ARRAY:
            return [item.to_python() for item in self.value]
        if self.kind == JSONKind.OBJECT:
            return {key: item.to_python() for key, item in self.value.items()}
        return self.value

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    @property
    def is_null(self) -> bool:
        return self.kind == JSONKind.NULL

    def as_str(self, default: str = "") -> str:
        return self.value if self.kind == JSONKind.STRING else default

    def as_bool(self, default: bool = False) -> bool:
        return self.value if self.kind == JSONKind.BOOL else default

    def as_float(self, default: Optional[float] = None) -> Optional[float]:
        return float(self.value) if self.kind == JSONKind.NUMBER else default

    def as_list(self) -> List["JSONValue"]:
        return list(self.value) if self.kind == JSONKind.ARRAY else []

    def as_dict(self) -> Dict[str, "JSONValue"]:
        return dict(self.value) if self.kind == JSONKind.OBJECT else {}

    def get(self, key: str) -> "JSONValue":
        """Child at ``key``; ``null`` when this is not an object or the key is absent."""
        if self.kind != JSONKind.OBJECT:
            return JSONValue(JSONKind.NULL)
        return self.value.get(key) or JSONValue(JSONKind.NULL)


__all__ = ["JSONKind", "JSONValue"]
