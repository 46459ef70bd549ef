import pytest
from sqlalchemy import event

from serverlister.models import User
from serverlister.notify.recipients import (
    EmptyRecipientsError,
    RecipientResolver,
    build_recipient_predicate,
)


def test_role_and_user_targets_are_deduplicated(session_factory):
    with session_factory() as session:
        resolved = RecipientResolver(session).resolve(
            role_names=["admin"], user_ids=["u2", "u3"]
        )

    assert sorted(resolved) == ["u1", "u2", "u3"]
    assert len(resolved) == len(set(resolved))


def test_user_holding_two_requested_roles_is_notified_once(session_factory):
    with session_factory() as session:
        session.add_all(
            [
                User(id="c1", email="c1@example.com", roles={"admin", "certs"}),
                User(id="c2", email="c2@example.com", roles={"admin"}),
            ]
        )
        session.query(User).filter(User.id.in_(["u1", "u2"])).delete()
        session.commit()

        resolved = RecipientResolver(session).resolve(role_names=["admin", "certs"])

    assert sorted(resolved) == ["c1", "c2"]


def test_users_without_roles_never_match_role_requests(session_factory):
    with session_factory() as session:
        resolved = RecipientResolver(session).resolve(role_names=["admin", "user"])

    assert "u4" not in resolved
    assert sorted(resolved) == ["u1", "u2", "u3"]


def test_explicit_ids_reach_users_without_roles(session_factory):
    with session_factory() as session:
        resolved = RecipientResolver(session).resolve(user_ids=["u4", "ghost"])

    assert resolved == ["u4"]


def test_unknown_role_resolves_to_nobody(session_factory):
    with session_factory() as session:
        assert RecipientResolver(session).resolve(role_names=["auditor"]) == []


def test_empty_request_is_rejected(session_factory):
    with session_factory() as session:
        resolver = RecipientResolver(session)
        with pytest.raises(EmptyRecipientsError):
            resolver.resolve(role_names=[], user_ids=[])
        with pytest.raises(EmptyRecipientsError):
            resolver.resolve(role_names=["  "], user_ids=None)


def test_predicate_matches_roles_or_ids():
    matches = build_recipient_predicate(["admin"], ["u9"])

    assert matches(User(id="u1", roles=frozenset({"admin"})))
    assert matches(User(id="u9", roles=frozenset()))
    assert not matches(User(id="u3", roles=frozenset({"user"})))


def test_only_candidate_users_are_loaded(session_factory):
    with session_factory() as session:
        session.add_all(
            [
                User(id="x1", roles={"administrator"}),
                User(id="x2", roles={"ops_team"}),
                User(id="x3", roles={"ops%team"}),
            ]
        )
        session.commit()

    loaded = set()
    with session_factory() as session:
        event.listen(session, "loaded_as_persistent", lambda _, user: loaded.add(user.id))
        resolved = RecipientResolver(session).resolve(role_names=["admin"], user_ids=["u4"])

    assert sorted(resolved) == ["u1", "u2", "u4"]
    assert loaded == {"u1", "u2", "u4"}

    with session_factory() as session:
        assert RecipientResolver(session).resolve(role_names=["ops%team"]) == ["x3"]
