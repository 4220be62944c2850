"""Request descriptions consumed by ``APIClient.send``."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


def _identity(payload: Any) -> Any:
    return payload


@dataclass
class Endpoint:
    """One REST call: where to send it and how to decode the JSON body.

    ``decode`` receives the parsed JSON value and returns the typed result;
    any exception it raises is reported as a decoding failure.
    """

    path: str
    method: str = "GET"
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    json_body: Any = None
    decode: Callable[[Any], Any] = _identity

    @property
    def body_bytes(self) -> Optional[bytes]:
        if self.json_body is None:
            return None
        return json.dumps(self.json_body).encode("utf-8")


def item_path(base: str, item_id) -> str:
    """Path of a single resource under a collection path."""
    return f"{base}/{item_id}"
