"""SQL repositories for teams, users and pull requests."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from .database import Database, is_unique_violation
from .domain import (
    PullRequest,
    PullRequestExistsError,
    PullRequestID,
    PullRequestNotFoundError,
    PullRequestStatus,
    Team,
    TeamAlreadyExistsError,
    TeamMember,
    TeamName,
    TeamNotFoundError,
    User,
    UserID,
    UserNotFoundError,
)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlTeamRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def create(self, name: TeamName) -> None:
        try:
            with self._db.cursor() as cur:
                cur.execute("INSERT INTO teams (name) VALUES (?)", (name,))
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise TeamAlreadyExistsError() from exc
            raise

    def get_by_name(self, name: TeamName) -> Team:
        with self._db.transaction(), self._db.cursor() as cur:
            cur.execute("SELECT name FROM teams WHERE name = ?", (name,))
            row = cur.fetchone()
            if row is None:
                raise TeamNotFoundError()
            cur.execute(
                "SELECT id, username, is_active FROM users "
                "WHERE team_name = ? ORDER BY rowid",
                (name,),
            )
            members = [
                TeamMember(
                    id=member["id"],
                    username=member["username"],
                    is_active=bool(member["is_active"]),
                )
                for member in cur.fetchall()
            ]
        return Team(name=row["name"], members=members)

    def get_by_user_id(self, user_id: UserID) -> Team:
        with self._db.transaction():
            with self._db.cursor() as cur:
                cur.execute("SELECT team_name FROM users WHERE id = ?", (user_id,))
                row = cur.fetchone()
            if row is None:
                raise UserNotFoundError()
            return self.get_by_name(row["team_name"])


class SqlUserRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def upsert_batch(self, users: list[User]) -> None:
        if not users:
            return
        with self._db.transaction(), self._db.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO users (id, username, team_name, is_active)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    username  = excluded.username,
                    team_name = excluded.team_name,
                    is_active = excluded.is_active
                """,
                [(u.id, u.username, u.team_name, int(u.is_active)) for u in users],
            )

    def get_by_id(self, user_id: UserID) -> User:
        with self._db.cursor() as cur:
            cur.execute(
                "SELECT id, username, team_name, is_active FROM users WHERE id = ?",
                (user_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise UserNotFoundError()
        return User(
            id=row["id"],
            username=row["username"],
            team_name=row["team_name"],
            is_active=bool(row["is_active"]),
        )

    def update(self, user: User) -> None:
        with self._db.cursor() as cur:
            cur.execute(
                "UPDATE users SET username = ?, team_name = ?, is_active = ? WHERE id = ?",
                (user.username, user.team_name, int(user.is_active), user.id),
            )
            if cur.rowcount == 0:
                raise UserNotFoundError()


class SqlPullRequestRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def create(self, pr: PullRequest) -> None:
        with self._db.transaction(), self._db.cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO pull_requests
                        (id, name, author_id, status, created_at, merged_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        pr.id,
                        pr.name,
                        pr.author_id,
                        PullRequestStatus(pr.status).value,
                        _to_text(pr.created_at),
                        _to_text(pr.merged_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc):
                    raise PullRequestExistsError() from exc
                raise
            if pr.assigned_reviewers:
                self._replace_reviewers(cur, pr.id, pr.assigned_reviewers)

    def get_by_id(self, pr_id: PullRequestID) -> PullRequest:
        with self._db.transaction(), self._db.cursor() as cur:
            cur.execute(
                "SELECT id, name, author_id, status, created_at, merged_at "
                "FROM pull_requests WHERE id = ?",
                (pr_id,),
            )
            row = cur.fetchone()
            if row is None:
                raise PullRequestNotFoundError()
            return self._build(cur, row)

    def list_by_reviewer(self, reviewer_id: UserID) -> list[PullRequest]:
        with self._db.transaction(), self._db.cursor() as cur:
            cur.execute(
                """
                SELECT pr.id, pr.name, pr.author_id, pr.status,
                       pr.created_at, pr.merged_at
                FROM pull_requests pr
                JOIN pull_request_reviewers prr ON prr.pull_request_id = pr.id
                WHERE prr.reviewer_id = ?
                ORDER BY pr.rowid
                """,
                (reviewer_id,),
            )
            rows = cur.fetchall()
            return [self._build(cur, row) for row in rows]

    def update(self, pr: PullRequest) -> None:
        with self._db.transaction(), self._db.cursor() as cur:
            cur.execute(
                """
                UPDATE pull_requests
                SET name = ?, author_id = ?, status = ?, created_at = ?, merged_at = ?
                WHERE id = ?
                """,
                (
                    pr.name,
                    pr.author_id,
                    PullRequestStatus(pr.status).value,
                    _to_text(pr.created_at),
                    _to_text(pr.merged_at),
                    pr.id,
                ),
            )
            if cur.rowcount == 0:
                raise PullRequestNotFoundError()
            self._replace_reviewers(cur, pr.id, pr.assigned_reviewers)

    @staticmethod
    def _replace_reviewers(
        cur: sqlite3.Cursor, pr_id: PullRequestID, reviewers: list[UserID]
    ) -> None:
        cur.execute(
            "DELETE FROM pull_request_reviewers WHERE pull_request_id = ?", (pr_id,)
        )
        cur.executemany(
            "INSERT INTO pull_request_reviewers (pull_request_id, reviewer_id) "
            "VALUES (?, ?)",
            [(pr_id, reviewer) for reviewer in reviewers],
        )

    @staticmethod
    def _build(cur: sqlite3.Cursor, row: sqlite3.Row) -> PullRequest:
        cur.execute(
            "SELECT reviewer_id FROM pull_request_reviewers "
            "WHERE pull_request_id = ? ORDER BY rowid",
            (row["id"],),
        )
        reviewers = [r["reviewer_id"] for r in cur.fetchall()]
        return PullRequest(
            id=row["id"],
            name=row["name"],
            author_id=row["author_id"],
            status=PullRequestStatus(row["status"]),
            assigned_reviewers=reviewers,
            created_at=_from_text(row["created_at"]),
            merged_at=_from_text(row["merged_at"]),
        )