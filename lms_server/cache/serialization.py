"""Cache value serialization using orjson.

Two payload kinds are stored:

- ``CachedResponse``: a replayable HTTP response (status, headers, raw body)
  written by the read-through response cache.
- Typed envelopes for function results: Pydantic BaseModel, dicts, lists,
  tuples and primitives, wrapped with type metadata so deserialization can
  reconstruct the original type.
"""

from __future__ import annotations

import base64
import importlib
from typing import Any, List, Tuple, Type

import orjson
from pydantic import BaseModel, field_validator
from starlette.responses import Response

# Recomputed on replay, or never safe to share between callers.
_UNREPLAYABLE_HEADERS = frozenset({"content-length", "set-cookie", "x-cache"})


class CachedResponse(BaseModel):
    """Snapshot of a materialized response, replayed byte-for-byte on a hit."""

    status_code: int
    headers: List[Tuple[str, str]]
    body: str  # base64

    @field_validator("body")
    @classmethod
    def validate_body(cls, v: str) -> str:
        base64.b64decode(v, validate=True)
        return v

    @classmethod
    def from_response(cls, response: Response) -> "CachedResponse":
        headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in response.raw_headers
            if name.decode("latin-1").lower() not in _UNREPLAYABLE_HEADERS
        ]
        return cls(
            status_code=response.status_code,
            headers=headers,
            body=base64.b64encode(response.body).decode("ascii"),
        )

    @property
    def content(self) -> bytes:
        return base64.b64decode(self.body, validate=True)

    def to_response(self) -> Response:
        response = Response(content=self.content, status_code=self.status_code)
        for name, value in self.headers:
            response.headers.append(name, value)
        return response


def dump_response(response: Response) -> str:
    """Serialize a materialized response for storage."""
    return orjson.dumps(CachedResponse.from_response(response).model_dump()).decode("utf-8")


def load_response(raw: str) -> CachedResponse:
    """Parse a stored response; raises on malformed payloads."""
    return CachedResponse.model_validate(orjson.loads(raw))


def serialize(value: Any) -> str:
    """Serialize a value to a JSON string for store persistence.

    Wraps the value with type metadata for lossless round-tripping.
    """
    envelope = _serialize_element(value)
    return orjson.dumps(envelope).decode("utf-8")


def deserialize(raw: str) -> Any:
    """Deserialize a JSON string from the store back to the original type."""
    envelope = orjson.loads(raw)
    return _deserialize_envelope(envelope)


def _serialize_element(item: Any) -> dict:
    """Serialize a single element with type envelope."""
    if isinstance(item, BaseModel):
        return {
            "_type": "pydantic",
            "_model": f"{item.__class__.__module__}.{item.__class__.__name__}",
            "data": item.model_dump(mode="json"),
        }
    elif isinstance(item, tuple):
        return {
            "_type": "tuple",
            "data": [_serialize_element(sub) for sub in item],
        }
    elif isinstance(item, list):
        return {
            "_type": "list",
            "data": [_serialize_element(sub) for sub in item],
        }
    elif isinstance(item, dict):
        return {
            "_type": "dict",
            "data": {str(k): _serialize_element(v) for k, v in item.items()},
        }
    else:
        return {"_type": "plain", "data": item}


def _deserialize_envelope(envelope: dict) -> Any:
    """Deserialize a single envelope dict back to its original type."""
    t = envelope["_type"]

    if t == "pydantic":
        model_cls = _resolve_model(envelope["_model"])
        return model_cls.model_validate(envelope["data"])
    elif t == "tuple":
        return tuple(
            _deserialize_envelope(elem)
            for elem in envelope["data"]
        )
    elif t == "list":
        return [
            _deserialize_envelope(elem)
            for elem in envelope["data"]
        ]
    elif t == "dict":
        return {k: _deserialize_envelope(v) for k, v in envelope["data"].items()}
    else:
        return envelope["data"]


def _resolve_model(model_path: str) -> Type[BaseModel]:
    """Resolve a Pydantic model class from its module.ClassName string."""
    module_name, class_name = model_path.rsplit(".", 1)
    module = importlib.import_module(module_name)
    cls = getattr(module, class_name)
    if not (isinstance(cls, type) and issubclass(cls, BaseModel)):
        raise TypeError(f"{model_path} is not a Pydantic BaseModel subclass")
    return cls
