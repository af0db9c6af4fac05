import logging

import pytest

from prservice.request_logger import (
    REQUEST_ID_ENVIRON_KEY,
    RequestLoggerMiddleware,
    format_duration,
)


def test_format_duration_below_millisecond_uses_microseconds():
    assert format_duration(0.0005) == "500µs"


def test_format_duration_zero():
    assert format_duration(0.0) == "0µs"


def test_format_duration_truncates_milliseconds():
    assert format_duration(0.25) == "250ms"
    assert format_duration(0.0019) == "1ms"


def _app(status_line):
    def app(environ, start_response):
        start_response(status_line, [("Content-Type", "application/json")])
        return [b"{}"]

    return app


def _call(middleware, environ):
    seen = {}

    def start_response(status, headers, exc_info=None):
        seen["status"] = status

    body = middleware(environ, start_response)
    chunks = list(body)
    body.close()
    return seen, chunks


def _records(caplog, message):
    return [r for r in caplog.records if r.getMessage() == message]


def test_logs_start_and_finish_with_status(caplog):
    logger = logging.getLogger("test.request_logger")
    middleware = RequestLoggerMiddleware(_app("404 Not Found"), logger)
    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": "/team/get",
        REQUEST_ID_ENVIRON_KEY: "req-1",
    }
    with caplog.at_level(logging.INFO, logger="test.request_logger"):
        seen, chunks = _call(middleware, environ)

    assert seen["status"] == "404 Not Found"
    assert chunks == [b"{}"]
    started = _records(caplog, "request started")
    finished = _records(caplog, "request finished")
    assert len(started) == 1 and len(finished) == 1
    assert started[0].http_method == "GET"
    assert started[0].http_path == "/team/get"
    assert started[0].request_id == "req-1"
    assert finished[0].http_status == 404
    assert finished[0].request_id == "req-1"
    assert finished[0].duration.endswith(("µs", "ms"))


def test_status_defaults_and_header_request_id(caplog):
    logger = logging.getLogger("test.request_logger.header")
    middleware = RequestLoggerMiddleware(_app("201 Created"), logger)
    environ = {"REQUEST_METHOD": "POST", "PATH_INFO": "/team/add",
               "HTTP_X_REQUEST_ID": "hdr-7"}
    with caplog.at_level(logging.INFO, logger="test.request_logger.header"):
        _call(middleware, environ)
    finished = _records(caplog, "request finished")
    assert finished[0].http_status == 201
    assert finished[0].request_id == "hdr-7"


def test_finish_logged_once_even_if_closed_twice(caplog):
    logger = logging.getLogger("test.request_logger.twice")
    middleware = RequestLoggerMiddleware(_app("200 OK"), logger)
    with caplog.at_level(logging.INFO, logger="test.request_logger.twice"):
        body = middleware({}, lambda *a: None)
        list(body)
        body.close()
        body.close()
    assert len(_records(caplog, "request finished")) == 1


def test_app_exception_is_logged_and_reraised(caplog):
    def broken(environ, start_response):
        raise RuntimeError("boom")

    logger = logging.getLogger("test.request_logger.broken")
    middleware = RequestLoggerMiddleware(broken, logger)
    with caplog.at_level(logging.INFO, logger="test.request_logger.broken"):
        with pytest.raises(RuntimeError, match="boom"):
            middleware({}, lambda *a: None)
    assert len(_records(caplog, "request finished")) == 1