"""Flask application exposing the team, user and pull request services."""

from __future__ import annotations

import json
import logging
from typing import Any, NamedTuple, Optional

from flask import Flask, Response, request

from .api_models import (
    AddTeamRequest,
    CreatePullRequestRequest,
    ErrorCode,
    MergePullRequestRequest,
    ReassignPullRequestRequest,
    RequestValidationError,
    SetUserIsActiveRequest,
    add_team_response,
    error_response,
    pull_request_envelope_response,
    reassign_response,
    set_user_is_active_response,
    team_response,
    user_reviews_response,
)
from .domain import (
    NoCandidateError,
    PullRequestExistsError,
    PullRequestNotFoundError,
    ReassignMergedPullRequestError,
    ReviewerIsNotAssignedError,
    TeamAlreadyExistsError,
    TeamNotFoundError,
    UserNotFoundError,
)
from .request_logger import REQUEST_ID_ENVIRON_KEY

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class _ErrorRule(NamedTuple):
    error: type
    status: int
    code: ErrorCode
    message: str
    log_message: str


class _Rejected(Exception):
    """Carries a finished error response out of request parsing."""

    def __init__(self, response: Response) -> None:
        super().__init__("request rejected")
        self.response = response


def _encode(payload: Any) -> str:
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text + "\n"


class _Responder:
    """Shared JSON writing, error reporting and body decoding."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    @staticmethod
    def request_id() -> str:
        environ = request.environ
        return environ.get(REQUEST_ID_ENVIRON_KEY) or request.headers.get("X-Request-Id", "")

    @staticmethod
    def json(status: int, payload: Any) -> Response:
        body = "" if payload is None else _encode(payload)
        return Response(body, status=status, content_type="application/json")

    def error(
        self,
        status: int,
        code: ErrorCode,
        message: str,
        log_message: str,
        err: Optional[BaseException] = None,
        **fields: Any,
    ) -> Response:
        extra: dict[str, Any] = {"request_id": self.request_id(), "error_code": code.value}
        if err is not None:
            extra["err"] = str(err)
        extra.update(fields)
        level = logging.ERROR if status >= 500 else logging.INFO
        self.logger.log(level, log_message, extra=extra)
        return self.json(status, error_response(code, message))

    def _decode_failed(self, name: str, err: BaseException) -> _Rejected:
        self.logger.warning(
            "failed to decode " + name,
            extra={"request_id": self.request_id(), "err": str(err)},
        )
        return _Rejected(
            self.error(
                400,
                ErrorCode.DECODE_FAILED,
                "invalid request body",
                f"invalid {name} body",
                err,
            )
        )

    def parse(self, model: Any, name: str) -> Any:
        """Decode the JSON body into ``model``; raise _Rejected on failure."""
        text = request.get_data().decode("utf-8", errors="replace")
        try:
            data, _ = json.JSONDecoder().raw_decode(text.lstrip(" \t\r\n"))
        except ValueError as exc:
            raise self._decode_failed(name, exc) from exc

        try:
            return model.from_json(data)
        except RequestValidationError as exc:
            if exc.code is ErrorCode.DECODE_FAILED:
                raise self._decode_failed(name, exc) from exc
            self.logger.warning(
                "failed to validate " + name,
                extra={"request_id": self.request_id(), "err": str(exc)},
            )
            raise _Rejected(
                self.error(
                    400,
                    ErrorCode.VALIDATION_FAILED,
                    "validation failed",
                    "validation failed for " + name,
                    exc,
                )
            ) from exc

    def failure(
        self,
        exc: Exception,
        rules: tuple[_ErrorRule, ...],
        fallback_log: str,
        **fields: Any,
    ) -> Response:
        for rule in rules:
            if isinstance(exc, rule.error):
                return self.error(
                    rule.status, rule.code, rule.message, rule.log_message, exc, **fields
                )
        return self.error(
            500,
            ErrorCode.INTERNAL_SERVER,
            "internal server error",
            fallback_log,
            exc,
            **fields,
        )


_NOT_FOUND = "resource not found"

_CREATE_PR_RULES = (
    _ErrorRule(UserNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "user not found to create pull request"),
    _ErrorRule(TeamNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "team not found to create pull request"),
    _ErrorRule(PullRequestExistsError, 409, ErrorCode.PR_EXISTS,
               "PR id already exists", "PR id already exists"),
)

_MERGE_PR_RULES = (
    _ErrorRule(PullRequestNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "pr id not found"),
)

_REASSIGN_PR_RULES = (
    _ErrorRule(PullRequestNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "pr not found"),
    _ErrorRule(UserNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "user not found"),
    _ErrorRule(ReassignMergedPullRequestError, 409, ErrorCode.PR_MERGED,
               "cannot reassign on merged PR", "pull request already merged"),
    _ErrorRule(ReviewerIsNotAssignedError, 409, ErrorCode.NOT_ASSIGNED,
               "user is not assigned on PR", "pull request reviewer is not assigned"),
    _ErrorRule(NoCandidateError, 409, ErrorCode.NO_CANDIDATE,
               "no candidate to reassign review", "no candidate to reassign review"),
)

_GET_TEAM_RULES = (
    _ErrorRule(TeamNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND, "team not found"),
)

_SET_ACTIVE_RULES = (
    _ErrorRule(UserNotFoundError, 404, ErrorCode.NOT_FOUND, _NOT_FOUND,
               "user not found in SetIsActive"),
)


def create_app(team_service, user_service, pull_request_service, logger=None) -> Flask:
    """Build the Flask application with all team, user and pull request routes."""
    app = Flask(__name__)
    api = _Responder(logger or logging.getLogger(__name__))

    @app.errorhandler(_Rejected)
    def _rejected(exc: _Rejected) -> Response:
        return exc.response

    @app.post("/team/add")
    def add_team() -> Response:
        req = api.parse(AddTeamRequest, "addTeamRequest")
        try:
            created = team_service.create(req.to_domain())
        except Exception as exc:
            rules = (
                _ErrorRule(TeamAlreadyExistsError, 400, ErrorCode.TEAM_EXISTS,
                           f"{req.team_name} already exists", "team already exists"),
            )
            return api.failure(exc, rules, "failed to add team", team_name=req.team_name)
        return api.json(201, add_team_response(created))

    @app.get("/team/get")
    def get_team() -> Response:
        team_name = request.args.get("team_name", "")
        try:
            team = team_service.get(team_name)
        except Exception as exc:
            return api.failure(exc, _GET_TEAM_RULES, "failed to get team", team_name=team_name)
        return api.json(200, team_response(team))

    @app.post("/users/setIsActive")
    def set_is_active() -> Response:
        req = api.parse(SetUserIsActiveRequest, "setUserIsActiveRequest")
        try:
            user = user_service.set_is_active(req.user_id, req.is_active)
        except Exception as exc:
            return api.failure(
                exc, _SET_ACTIVE_RULES, "failed to set active status", user_id=req.user_id
            )
        return api.json(200, set_user_is_active_response(user))

    @app.get("/users/getReview")
    def get_review() -> Response:
        user_id = request.args.get("user_id", "")
        if not user_id:
            return api.error(
                400,
                ErrorCode.VALIDATION_FAILED,
                "user_id is required",
                "missing user_id in query",
            )
        try:
            prs = user_service.get_prs(user_id)
        except Exception as exc:
            return api.failure(exc, (), "failed to get prs for user", user_id=user_id)
        return api.json(200, user_reviews_response(user_id, prs or []))

    @app.post("/pullRequest/create")
    def create_pull_request() -> Response:
        req = api.parse(CreatePullRequestRequest, "createPullRequestRequest")
        try:
            pr = pull_request_service.create(
                req.pull_request_id, req.pull_request_name, req.author_id
            )
        except Exception as exc:
            return api.failure(
                exc, _CREATE_PR_RULES, "failed to create pull request",
                pr_id=req.pull_request_id,
            )
        return api.json(201, pull_request_envelope_response(pr))

    @app.post("/pullRequest/merge")
    def merge_pull_request() -> Response:
        req = api.parse(MergePullRequestRequest, "MergePullRequestRequest")
        try:
            pr = pull_request_service.merge(req.pull_request_id)
        except Exception as exc:
            return api.failure(
                exc, _MERGE_PR_RULES, "failed to merge pull request",
                pr_id=req.pull_request_id,
            )
        return api.json(200, pull_request_envelope_response(pr))

    @app.post("/pullRequest/reassign")
    def reassign_pull_request() -> Response:
        req = api.parse(ReassignPullRequestRequest, "ReassignPullRequestRequest")
        try:
            pr, replaced_by = pull_request_service.reassign(
                req.pull_request_id, req.old_user_id
            )
        except Exception as exc:
            return api.failure(
                exc, _REASSIGN_PR_RULES, "failed to reassign pull request",
                pr_id=req.pull_request_id, user_id=req.old_user_id,
            )
        return api.json(200, reassign_response(pr, replaced_by))

    return app