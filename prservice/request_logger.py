"""WSGI middleware that logs the start and end of every request."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Iterator, Optional

REQUEST_ID_ENVIRON_KEY = "prservice.request_id"


def format_duration(seconds: float) -> str:
    """Render a duration in whole milliseconds, or microseconds below 1 ms."""
    micros = int(round(seconds * 1_000_000))
    millis = micros // 1000
    if millis == 0:
        return f"{micros}µs"
    return f"{millis}ms"


def _request_id(environ: dict) -> str:
    return environ.get(REQUEST_ID_ENVIRON_KEY) or environ.get("HTTP_X_REQUEST_ID", "")


class _LoggedBody:
    """Response body that logs completion once the server closes it."""

    def __init__(self, body: Iterable[bytes], on_close: Callable[[], None]) -> None:
        self._body = body
        self._on_close = on_close
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._body)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            close = getattr(self._body, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


class RequestLoggerMiddleware:
    def __init__(self, app: Callable, logger: Optional[logging.Logger] = None) -> None:
        self.app = app
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        start = time.perf_counter()
        request_id = _request_id(environ)
        self.logger.info(
            "request started",
            extra={
                "http_method": environ.get("REQUEST_METHOD", ""),
                "http_path": environ.get("PATH_INFO", ""),
                "request_id": request_id,
            },
        )

        status = {"code": 200}

        def tracking_start_response(status_line: str, headers: Any, exc_info=None):
            status["code"] = int(status_line.split(" ", 1)[0])
            if exc_info is None:
                return start_response(status_line, headers)
            return start_response(status_line, headers, exc_info)

        def finished() -> None:
            self.logger.info(
                "request finished",
                extra={
                    "duration": format_duration(time.perf_counter() - start),
                    "http_status": status["code"],
                    "request_id": request_id,
                },
            )

        try:
            body = self.app(environ, tracking_start_response)
        except BaseException:
            finished()
            raise
        return _LoggedBody(body, finished)