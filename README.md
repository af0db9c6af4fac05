# prservice

A small service that keeps track of teams, their members and pull requests,
and picks reviewers for each pull request automatically.

When a pull request is opened, up to two active members of the author's team
(never the author) are chosen at random as reviewers. A reviewer can later be
swapped for another active teammate, and a pull request can be merged, after
which its reviewers can no longer be reassigned.

## Layers

- `prservice.domain` — the data model (`Team`, `TeamMember`, `User`,
  `PullRequest`, `PullRequestStatus`), the storage interfaces
  (`TeamRepository`, `UserRepository`, `PullRequestRepository`,
  `TransactionManager`) and the errors the services raise, all derived from
  `DomainError`: `TeamNotFoundError`, `TeamAlreadyExistsError`,
  `UserNotFoundError`, `PullRequestNotFoundError`, `PullRequestExistsError`,
  `ReassignMergedPullRequestError`, `NoCandidateError`,
  `ReviewerIsNotAssignedError`.
- `prservice.services` — the business rules: `TeamService`, `UserService`,
  `PullRequestService`, plus the reviewer selection helpers
  `assign_reviewers` and `reassign_reviewers`.
- `prservice.database` — SQLite storage: `DatabaseConfig` (a file `path`,
  `":memory:"` by default, and a lock `timeout`), `open_database`, which
  connects, turns on foreign keys and creates the schema, and `Database` with
  its nestable `transaction()` context. `is_unique_violation` tells whether an
  SQLite error comes from a unique or primary key constraint.
- `prservice.repositories` — `SqlTeamRepository`, `SqlUserRepository` and
  `SqlPullRequestRepository`, built on a `Database`.
- `prservice.api_models` — request parsing and validation (each request class
  has `from_json`; bad input raises `RequestValidationError`, whose `code` is
  `DECODE_FAILED` or `VALIDATION_FAILED`) and the functions that shape JSON
  responses.
- `prservice.request_logger` — `RequestLoggerMiddleware`, a WSGI middleware
  that logs "request started" and "request finished" with the method, path,
  status and duration (`format_duration` renders it in ms, or µs under 1 ms).
- `prservice.web` — `create_app`, which builds the Flask application.

## Wiring it together

```python
import logging

from prservice.database import DatabaseConfig, open_database
from prservice.repositories import (
    SqlPullRequestRepository,
    SqlTeamRepository,
    SqlUserRepository,
)
from prservice.request_logger import RequestLoggerMiddleware
from prservice.services import PullRequestService, TeamService, UserService
from prservice.web import create_app

logger = logging.getLogger("prservice")

database = open_database(DatabaseConfig(path="prservice.db"))
teams = SqlTeamRepository(database)
users = SqlUserRepository(database)
pull_requests = SqlPullRequestRepository(database)

app = create_app(
    TeamService(teams, users, database),
    UserService(users, pull_requests),
    PullRequestService(pull_requests, teams, database),
    logger,
)
app.wsgi_app = RequestLoggerMiddleware(app.wsgi_app, logger)
```

The `Database` itself serves as the services' transaction manager.
`app` is an ordinary Flask/WSGI application and can be served by any WSGI
server. A request id for log records is taken from the `X-Request-Id` header
when one is sent.

## HTTP API

All bodies are JSON. Errors come back as
`{"error": {"code": "...", "message": "..."}}`.

| Method | Path                     | Body / query                                   |
|--------|--------------------------|------------------------------------------------|
| POST   | `/team/add`              | `team_name`, `members[]` (`user_id`, `username`, `is_active`) |
| GET    | `/team/get`              | `?team_name=`                                  |
| POST   | `/users/setIsActive`     | `user_id`, `is_active`                         |
| GET    | `/users/getReview`       | `?user_id=`                                    |
| POST   | `/pullRequest/create`    | `pull_request_id`, `pull_request_name`, `author_id` |
| POST   | `/pullRequest/merge`     | `pull_request_id`                              |
| POST   | `/pullRequest/reassign`  | `pull_request_id`, `old_user_id`               |

Error codes: `TEAM_EXISTS`, `PR_EXISTS`, `PR_MERGED`, `NOT_ASSIGNED`,
`NO_CANDIDATE`, `NOT_FOUND`, `DECODE_FAILED`, `VALIDATION_FAILED`,
`INTERNAL_SERVER_ERROR`.

Adding a team that already exists answers 400 with `TEAM_EXISTS`; opening a
pull request with an id in use answers 409 with `PR_EXISTS`. Merging is
idempotent: merging an already merged pull request returns it unchanged.
Reassigning on a merged pull request, for a user who is not a reviewer, or
when no other active teammate is available, is rejected with a 409 and the
matching error code. Pull request responses carry `createdAt` and `mergedAt`
only when they are set.

## Using the services directly

The services only depend on the interfaces in `prservice.domain`, so they can
run over any storage that implements them:

```python
from prservice.domain import NoCandidateError

pr = pull_request_service.create("pr-1", "Add search", "u1")
print(pr.assigned_reviewers)

try:
    pr, replaced_by = pull_request_service.reassign("pr-1", pr.assigned_reviewers[0])
except NoCandidateError:
    ...
```

## What it does not do

The package has no command that starts a server and reads no configuration
file or environment; the application is assembled in code as shown above and
handed to a WSGI server of your choice. Storage is SQLite only. The request
logging middleware is not applied by `create_app` and does not generate
request ids itself.