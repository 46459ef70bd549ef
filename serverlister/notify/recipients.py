"""Resolve abstract notification targets into concrete user identifiers."""

from __future__ import annotations

import json
from typing import Callable, Iterable

from sqlalchemy import String, cast, or_, select
from sqlalchemy.orm import Session

from serverlister.logging import get_logger
from serverlister.models import User


class EmptyRecipientsError(ValueError):
    """Raised when a request names neither roles nor users."""

    def __init__(self) -> None:
        super().__init__("You must provide at least one role or user as an array")


def _normalise(values: Iterable[str] | None) -> list[str]:
    seen: dict[str, None] = {}
    for value in values or ():
        item = str(value).strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


def build_recipient_predicate(
    role_names: Iterable[str], user_ids: Iterable[str]
) -> Callable[[User], bool]:
    """Return ``any(role in user.roles) or user.id in user_ids`` as a callable.

    Role matching is a set intersection against the user's role set, so a user
    without roles never matches a role-based request.
    """

    wanted_roles = frozenset(role_names)
    wanted_ids = frozenset(user_ids)

    def matches(user: User) -> bool:
        if user.id in wanted_ids:
            return True
        return not wanted_roles.isdisjoint(user.roles or ())

    return matches


def _candidate_clause(role_names: list[str], user_ids: list[str]):
    """SQL narrowing to users that may match; the predicate has the final say.

    Roles are stored as a JSON array of strings, so a role can only be present
    where the column text contains its JSON-encoded form.
    """

    role_text = cast(User.roles, String)
    clauses = [
        role_text.contains(json.dumps(role), autoescape=True) for role in role_names
    ]
    if user_ids:
        clauses.append(User.id.in_(user_ids))
    return or_(*clauses)


class RecipientResolver:
    """Turn role names and explicit user ids into a de-duplicated id list."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._logger = get_logger(__name__)

    def resolve(
        self,
        *,
        role_names: Iterable[str] | None = None,
        user_ids: Iterable[str] | None = None,
    ) -> list[str]:
        """Return each matching user id exactly once, in query order.

        Explicit ids that do not belong to an existing user are dropped.
        """

        roles = _normalise(role_names)
        ids = _normalise(user_ids)
        if not roles and not ids:
            raise EmptyRecipientsError()

        statement = (
            select(User).where(_candidate_clause(roles, ids)).order_by(User.id)
        )
        predicate = build_recipient_predicate(roles, ids)

        resolved: dict[str, None] = {}
        for user in self._session.scalars(statement):
            if predicate(user):
                resolved.setdefault(user.id, None)

        self._logger.info(
            "notification.recipients.resolved",
            roles=roles,
            requested_user_ids=len(ids),
            recipients=len(resolved),
        )
        return list(resolved)


__all__ = ["EmptyRecipientsError", "RecipientResolver", "build_recipient_predicate"]
