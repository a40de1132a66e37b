# src/faultline/core/http.py
"""Minimal request/response/handler/filter contract.

The chaos engine only needs a function-composition contract: a Handler turns
a Request into a Response, and a Filter turns a Handler into a new Handler.
Filters compose by the decorator law:

    filter.then(handler)(request) == filter(handler)(request)

Requests and responses are frozen values; "mutation" returns a copy.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from http import HTTPStatus
from typing import overload


class Method(StrEnum):
    """HTTP request methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"
    PURGE = "PURGE"
    HEAD = "HEAD"


@dataclass(frozen=True, slots=True)
class Request:
    """An inbound HTTP request.

    Attributes:
        method: Request method.
        path: Request path (no query string).
        query: Query parameters as ordered (name, value) pairs.
        headers: Headers as ordered (name, value) pairs.
        body: Raw request body.
    """

    method: Method
    path: str = "/"
    query: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """Return the first header value with this name (case-insensitive)."""
        return _first(self.headers, name.lower(), case_insensitive=True)

    def query_value(self, name: str) -> str | None:
        """Return the first query parameter value with this name."""
        return _first(self.query, name, case_insensitive=False)

    def with_body(self, body: bytes) -> Request:
        return dataclasses.replace(self, body=body)

    def with_header(self, name: str, value: str) -> Request:
        return dataclasses.replace(self, headers=(*self.headers, (name, value)))


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response.

    Attributes:
        status: Numeric status code.
        headers: Headers as ordered (name, value) pairs.
        body: Raw response body.
    """

    status: int
    headers: tuple[tuple[str, str], ...] = field(default=())
    body: bytes = b""

    @property
    def reason(self) -> str:
        """Standard reason phrase for the status code ("" if unknown)."""
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return ""

    def header(self, name: str) -> str | None:
        """Return the first header value with this name (case-insensitive)."""
        return _first(self.headers, name.lower(), case_insensitive=True)

    def with_body(self, body: bytes) -> Response:
        return dataclasses.replace(self, body=body)

    def with_header(self, name: str, value: str) -> Response:
        return dataclasses.replace(self, headers=(*self.headers, (name, value)))


Handler = Callable[[Request], Response]


def _first(pairs: tuple[tuple[str, str], ...], name: str, *, case_insensitive: bool) -> str | None:
    for key, value in pairs:
        if (key.lower() if case_insensitive else key) == name:
            return value
    return None


class Filter:
    """A decorator from Handler to Handler.

    Usage:
        logging_filter = Filter(lambda next: lambda request: next(request))
        app = logging_filter.then(handler)
        app(Request(Method.GET, "/"))
    """

    __slots__ = ("_fn",)

    def __init__(self, fn: Callable[[Handler], Handler]) -> None:
        self._fn = fn

    def __call__(self, next_handler: Handler) -> Handler:
        return self._fn(next_handler)

    @overload
    def then(self, other: Filter) -> Filter: ...

    @overload
    def then(self, other: Handler) -> Handler: ...

    def then(self, other: Filter | Handler) -> Filter | Handler:
        """Compose with another Filter (giving a Filter) or a Handler (giving a Handler)."""
        if isinstance(other, Filter):
            inner = other
            return Filter(lambda next_handler: self(inner(next_handler)))
        return self(other)

    @classmethod
    def identity(cls) -> Filter:
        """A Filter that forwards every request unchanged."""
        return cls(lambda next_handler: next_handler)
