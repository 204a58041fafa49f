from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter


@dataclass(frozen=True, slots=True)
class JsonSchema:
    """Minimal JSON Schema wrapper for OpenAI-style structured outputs."""

    name: str
    schema: dict[str, Any]
    strict: bool = True


def wrapped_schema_for(name: str, schema: Any) -> JsonSchema:
    """Build a response schema of the form {"value": <schema>}.

    Structured-output endpoints want an object at the root; wrapping lets
    lists and literals through as well.
    """

    inner = TypeAdapter(schema).json_schema()
    defs = inner.pop("$defs", None)
    root: dict[str, Any] = {
        "type": "object",
        "properties": {"value": inner},
        "required": ["value"],
        "additionalProperties": False,
    }
    if defs:
        # $ref paths are "#/$defs/...", so they resolve against the new root.
        root["$defs"] = defs
    # Pydantic schemas don't forbid extra keys, which strict mode rejects.
    return JsonSchema(name=name, schema=root, strict=False)
