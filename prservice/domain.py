"""Domain model: teams, users, pull requests, their errors and storage contracts."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

UserID = str
TeamName = str
PullRequestID = str

PULL_REQUEST_MAX_REVIEWERS = 2


class DomainError(Exception):
    """Base class for business-rule failures."""

    default_message = "domain error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class TeamNotFoundError(DomainError):
    default_message = "team not found"


class TeamAlreadyExistsError(DomainError):
    default_message = "team already exists"


class UserNotFoundError(DomainError):
    default_message = "user not found"


class PullRequestNotFoundError(DomainError):
    default_message = "pull request not found"


class PullRequestExistsError(DomainError):
    default_message = "pull request already exists"


class ReassignMergedPullRequestError(DomainError):
    default_message = "cannot reassign on merged PR"


class NoCandidateError(DomainError):
    default_message = "cannot find candidate"


class ReviewerIsNotAssignedError(DomainError):
    default_message = "reviewer is not assigned"


class PullRequestStatus(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"


@dataclass
class User:
    id: UserID
    username: str
    team_name: TeamName
    is_active: bool


@dataclass
class TeamMember:
    id: UserID
    username: str = ""
    is_active: bool = False

    def to_user(self, team_name: TeamName) -> User:
        """Return this member as a user belonging to ``team_name``."""
        return User(
            id=self.id,
            username=self.username,
            team_name=team_name,
            is_active=self.is_active,
        )


@dataclass
class Team:
    name: TeamName
    members: list[TeamMember] = field(default_factory=list)


@dataclass
class PullRequest:
    id: PullRequestID
    name: str = ""
    author_id: UserID = ""
    status: PullRequestStatus = PullRequestStatus.OPEN
    assigned_reviewers: list[UserID] = field(default_factory=list)
    created_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None


@runtime_checkable
class TeamRepository(Protocol):
    def create(self, name: TeamName) -> None:
        """Store a new team; raise TeamAlreadyExistsError if it exists."""

    def get_by_name(self, name: TeamName) -> Team:
        """Return the team with its members; raise TeamNotFoundError."""

    def get_by_user_id(self, user_id: UserID) -> Team:
        """Return the team of a user; raise UserNotFoundError."""


@runtime_checkable
class UserRepository(Protocol):
    def upsert_batch(self, users: list[User]) -> None:
        """Insert the users or overwrite the existing ones."""

    def get_by_id(self, user_id: UserID) -> User:
        """Return a user; raise UserNotFoundError."""

    def update(self, user: User) -> None:
        """Save a user; raise UserNotFoundError if it does not exist."""


@runtime_checkable
class PullRequestRepository(Protocol):
    def create(self, pr: PullRequest) -> None:
        """Store a new pull request; raise PullRequestExistsError."""

    def get_by_id(self, pr_id: PullRequestID) -> PullRequest:
        """Return a pull request; raise PullRequestNotFoundError."""

    def list_by_reviewer(self, reviewer_id: UserID) -> list[PullRequest]:
        """Return the pull requests the user is assigned to review."""

    def update(self, pr: PullRequest) -> None:
        """Save a pull request; raise PullRequestNotFoundError."""


@runtime_checkable
class TransactionManager(Protocol):
    def transaction(self) -> AbstractContextManager:
        """Open a transaction committed on success and rolled back on error."""