"""Application services for teams, users and pull requests."""

from __future__ import annotations

import random
from datetime import datetime, timezone

from .domain import (
    PULL_REQUEST_MAX_REVIEWERS,
    NoCandidateError,
    PullRequest,
    PullRequestID,
    PullRequestRepository,
    PullRequestStatus,
    ReassignMergedPullRequestError,
    ReviewerIsNotAssignedError,
    Team,
    TeamName,
    TeamRepository,
    TransactionManager,
    User,
    UserID,
    UserRepository,
)


def _shuffled(team: Team) -> list:
    return random.sample(team.members, len(team.members))


def assign_reviewers(author_id: UserID, team: Team) -> list[UserID]:
    """Pick up to two random active team members other than the author."""
    eligible = [
        member.id
        for member in _shuffled(team)
        if member.id != author_id and member.is_active
    ]
    return eligible[:PULL_REQUEST_MAX_REVIEWERS]


def reassign_reviewers(
    author_id: UserID,
    old_reviewer_id: UserID,
    old_reviewers: list[UserID],
    team: Team,
) -> tuple[list[UserID], UserID]:
    """Replace ``old_reviewer_id`` with a random eligible team member.

    Returns the new reviewer list and the chosen reviewer; raises
    NoCandidateError when nobody can take the place.
    """
    members = _shuffled(team)
    new_reviewers = [r for r in old_reviewers if r != old_reviewer_id]

    candidate = next(
        (
            member.id
            for member in members
            if member.id != author_id
            and member.is_active
            and member.id != old_reviewer_id
            and member.id not in new_reviewers
        ),
        None,
    )
    if candidate is not None:
        new_reviewers.append(candidate)

    if len(new_reviewers) != len(old_reviewers):
        raise NoCandidateError()
    return new_reviewers, candidate


class PullRequestService:
    def __init__(
        self,
        pull_requests: PullRequestRepository,
        teams: TeamRepository,
        tx_manager: TransactionManager,
    ) -> None:
        self._pull_requests = pull_requests
        self._teams = teams
        self._tx = tx_manager

    def create(self, pr_id: PullRequestID, name: str, author_id: UserID) -> PullRequest:
        """Open a pull request and assign reviewers from the author's team."""
        pr = PullRequest(
            id=pr_id,
            name=name,
            author_id=author_id,
            status=PullRequestStatus.OPEN,
            assigned_reviewers=[],
            created_at=datetime.now(timezone.utc),
            merged_at=None,
        )
        with self._tx.transaction():
            team = self._teams.get_by_user_id(author_id)
            pr.assigned_reviewers = assign_reviewers(author_id, team)
            self._pull_requests.create(pr)
        return pr

    def merge(self, pr_id: PullRequestID) -> PullRequest:
        """Mark a pull request merged; merging twice is harmless."""
        with self._tx.transaction():
            now = datetime.now(timezone.utc)
            pr = self._pull_requests.get_by_id(pr_id)
            if pr.status is PullRequestStatus.MERGED:
                return pr
            pr.status = PullRequestStatus.MERGED
            pr.merged_at = now
            self._pull_requests.update(pr)
        return pr

    def reassign(
        self, pr_id: PullRequestID, old_reviewer_id: UserID
    ) -> tuple[PullRequest, UserID]:
        """Replace one reviewer; return the pull request and the new reviewer."""
        with self._tx.transaction():
            pr = self._pull_requests.get_by_id(pr_id)
            if pr.status is PullRequestStatus.MERGED:
                raise ReassignMergedPullRequestError()
            if old_reviewer_id not in pr.assigned_reviewers:
                raise ReviewerIsNotAssignedError()

            team = self._teams.get_by_user_id(old_reviewer_id)
            reviewers, new_reviewer = reassign_reviewers(
                pr.author_id, old_reviewer_id, pr.assigned_reviewers, team
            )
            pr.assigned_reviewers = reviewers
            self._pull_requests.update(pr)
        return pr, new_reviewer


class TeamService:
    def __init__(
        self,
        teams: TeamRepository,
        users: UserRepository,
        tx_manager: TransactionManager,
    ) -> None:
        self._teams = teams
        self._users = users
        self._tx = tx_manager

    def create(self, team: Team) -> Team:
        """Store a team and upsert its members as users."""
        with self._tx.transaction():
            self._teams.create(team.name)
            users = [member.to_user(team.name) for member in team.members]
            self._users.upsert_batch(users)
        return team

    def get(self, name: TeamName) -> Team:
        return self._teams.get_by_name(name)


class UserService:
    def __init__(
        self,
        users: UserRepository,
        pull_requests: PullRequestRepository,
    ) -> None:
        self._users = users
        self._pull_requests = pull_requests

    def set_is_active(self, user_id: UserID, is_active: bool) -> User:
        user = self._users.get_by_id(user_id)
        user.is_active = is_active
        self._users.update(user)
        return user

    def get_prs(self, user_id: UserID) -> list[PullRequest]:
        return list(self._pull_requests.list_by_reviewer(user_id))