"""Request parsing and response shaping for the HTTP API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from .domain import PullRequest, PullRequestStatus, Team, TeamMember, User, UserID


class ErrorCode(str, Enum):
    TEAM_EXISTS = "TEAM_EXISTS"
    PR_EXISTS = "PR_EXISTS"
    PR_MERGED = "PR_MERGED"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    NO_CANDIDATE = "NO_CANDIDATE"
    NOT_FOUND = "NOT_FOUND"
    DECODE_FAILED = "DECODE_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_SERVER = "INTERNAL_SERVER_ERROR"


class RequestValidationError(ValueError):
    """A request body that cannot be decoded or does not pass validation.

    ``code`` is DECODE_FAILED when a value has the wrong JSON type and
    VALIDATION_FAILED when a field is missing or blank.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION_FAILED) -> None:
        super().__init__(message)
        self.code = code


def _as_object(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise RequestValidationError(
            f"{what} must be a JSON object", ErrorCode.DECODE_FAILED
        )
    return data


def _required_text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise RequestValidationError(
            f"field {key!r} must be a string", ErrorCode.DECODE_FAILED
        )
    if not value:
        raise RequestValidationError(f"field {key!r} is required")
    if not value.strip():
        raise RequestValidationError(f"field {key!r} must not be blank")
    return value


def _flag(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise RequestValidationError(
            f"field {key!r} must be a boolean", ErrorCode.DECODE_FAILED
        )
    return value


@dataclass(frozen=True)
class TeamMemberRequest:
    user_id: str
    username: str
    is_active: bool = False

    @classmethod
    def from_json(cls, data: Any) -> "TeamMemberRequest":
        obj = _as_object(data, "team member")
        return cls(
            user_id=_required_text(obj, "user_id"),
            username=_required_text(obj, "username"),
            is_active=_flag(obj, "is_active"),
        )


@dataclass(frozen=True)
class AddTeamRequest:
    team_name: str
    members: tuple[TeamMemberRequest, ...]

    @classmethod
    def from_json(cls, data: Any) -> "AddTeamRequest":
        obj = _as_object(data, "request body")
        raw_members = obj.get("members")
        if raw_members is not None and not isinstance(raw_members, list):
            raise RequestValidationError(
                "field 'members' must be an array", ErrorCode.DECODE_FAILED
            )
        for item in raw_members or ():
            if item is not None and not isinstance(item, Mapping):
                raise RequestValidationError(
                    "team member must be a JSON object", ErrorCode.DECODE_FAILED
                )
        team_name = _required_text(obj, "team_name")
        if raw_members is None:
            raise RequestValidationError("field 'members' is required")
        members = tuple(TeamMemberRequest.from_json(item) for item in raw_members)
        return cls(team_name=team_name, members=members)

    def to_domain(self) -> Team:
        return Team(
            name=self.team_name,
            members=[
                TeamMember(id=m.user_id, username=m.username, is_active=m.is_active)
                for m in self.members
            ],
        )


@dataclass(frozen=True)
class SetUserIsActiveRequest:
    user_id: str
    is_active: bool = False

    @classmethod
    def from_json(cls, data: Any) -> "SetUserIsActiveRequest":
        obj = _as_object(data, "request body")
        is_active = _flag(obj, "is_active")
        return cls(user_id=_required_text(obj, "user_id"), is_active=is_active)


@dataclass(frozen=True)
class CreatePullRequestRequest:
    pull_request_id: str
    pull_request_name: str
    author_id: str

    @classmethod
    def from_json(cls, data: Any) -> "CreatePullRequestRequest":
        obj = _as_object(data, "request body")
        return cls(
            pull_request_id=_required_text(obj, "pull_request_id"),
            pull_request_name=_required_text(obj, "pull_request_name"),
            author_id=_required_text(obj, "author_id"),
        )


@dataclass(frozen=True)
class MergePullRequestRequest:
    pull_request_id: str

    @classmethod
    def from_json(cls, data: Any) -> "MergePullRequestRequest":
        obj = _as_object(data, "request body")
        return cls(pull_request_id=_required_text(obj, "pull_request_id"))


@dataclass(frozen=True)
class ReassignPullRequestRequest:
    pull_request_id: str
    old_user_id: str

    @classmethod
    def from_json(cls, data: Any) -> "ReassignPullRequestRequest":
        obj = _as_object(data, "request body")
        return cls(
            pull_request_id=_required_text(obj, "pull_request_id"),
            old_user_id=_required_text(obj, "old_user_id"),
        )


def _format_time(value: datetime) -> str:
    text = value.replace(microsecond=0).isoformat()
    offset = value.utcoffset()
    suffix = ""
    if offset is not None:
        text, suffix = text[:-6], text[-6:]
        if offset == timedelta(0):
            suffix = "Z"
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    return text + suffix


def error_response(code: ErrorCode, message: str) -> dict:
    return {"error": {"code": ErrorCode(code).value, "message": message}}


def team_response(team: Team) -> dict:
    return {
        "team_name": team.name,
        "members": [
            {"user_id": m.id, "username": m.username, "is_active": m.is_active}
            for m in team.members
        ],
    }


def add_team_response(team: Team) -> dict:
    return {"team": team_response(team)}


def set_user_is_active_response(user: User) -> dict:
    return {
        "user": {
            "user_id": user.id,
            "username": user.username,
            "team_name": user.team_name,
            "is_active": user.is_active,
        }
    }


def user_reviews_response(user_id: UserID, prs: Iterable[PullRequest]) -> dict:
    return {
        "user_id": user_id,
        "pull_requests": [
            {
                "pull_request_id": pr.id,
                "pull_request_name": pr.name,
                "author_id": pr.author_id,
                "status": PullRequestStatus(pr.status).value,
            }
            for pr in prs
        ],
    }


def pull_request_response(pr: PullRequest) -> dict:
    body: dict[str, Any] = {
        "pull_request_id": pr.id,
        "pull_request_name": pr.name,
        "author_id": pr.author_id,
        "status": PullRequestStatus(pr.status).value,
        "assigned_reviewers": list(pr.assigned_reviewers),
    }
    created: Optional[datetime] = pr.created_at
    merged: Optional[datetime] = pr.merged_at
    if created is not None:
        body["createdAt"] = _format_time(created)
    if merged is not None:
        body["mergedAt"] = _format_time(merged)
    return body


def pull_request_envelope_response(pr: PullRequest) -> dict:
    return {"pr": pull_request_response(pr)}


def reassign_response(pr: PullRequest, replaced_by: UserID) -> dict:
    return {"pr": pull_request_response(pr), "replaced_by": replaced_by or ""}