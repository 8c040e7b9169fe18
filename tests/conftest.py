from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass
class FakeResponse:
    status_code: int = 200
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


def json_response(payload: Any, status: int = 200, headers: dict[str, str] | None = None) -> FakeResponse:
    text = json.dumps(payload)
    return FakeResponse(status_code=status, text=text, headers=headers or {}, content=text.encode("utf-8"))


@dataclass
class SessionCall:
    method: str
    url: str
    params: Any
    headers: dict[str, str]
    data: Any
    timeout: float | None


class FakeSession:
    """
    Sustituto mínimo de requests.Session con enrutado programable.

    `router(call)` devuelve un FakeResponse o lanza (p.ej. requests.Timeout).
    """

    def __init__(self, router: Callable[[SessionCall], FakeResponse]) -> None:
        self._router = router
        self.calls: list[SessionCall] = []

    def request(self, method, url, params=None, headers=None, data=None, timeout=None):  # noqa: ANN001
        call = SessionCall(
            method=method,
            url=url,
            params=params,
            headers=dict(headers or {}),
            data=data,
            timeout=timeout,
        )
        self.calls.append(call)
        return self._router(call)
