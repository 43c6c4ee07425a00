"""Unit tests for auth/directory.py -- AccountDirectory.

Runs against both storage backends (see the `store` fixture in conftest.py).

Covers:
- register -> authenticate round trip returns the same account id
- returned accounts are always redacted
- duplicate email / username -> ConflictError, also under concurrent registration
- wrong password and unknown email raise the same AuthenticationError
- input contract: username length, email syntax, password policy
- login() opens a session and issues a verifiable token
- activity entries written by register/login
"""

from __future__ import annotations

import threading

import pytest

from auth.directory import AccountDirectory, build_directory
from auth.errors import AuthenticationError, ConflictError, ValidationError
from auth.store import InMemoryStorage
from auth.tokens import TokenIssuer
from auth.vault import CredentialVault

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters-long"
TEST_ROUNDS = 4
SHORT_PASSWORD = "Str0ng!Pass"
STRONG_PASSWORD = "Str0ng!Passw0rd"


class TestRegister:
    def test_register_then_authenticate_same_id(self, directory: AccountDirectory) -> None:
        account = directory.register("alice", "alice@x.com", "Str0ng!Pass")
        authed = directory.authenticate("alice@x.com", "Str0ng!Pass")
        assert authed.id == account.id

    def test_new_account_defaults(self, directory: AccountDirectory) -> None:
        account = directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        assert account.role == "user"
        assert account.last_login is None
        assert account.created_at is not None
        assert account.id

    def test_returned_account_is_redacted(self, directory: AccountDirectory) -> None:
        account = directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        assert account.password_hash is None
        assert directory.get_by_id(account.id).password_hash is None

    def test_stored_hash_is_not_plaintext(self, directory: AccountDirectory) -> None:
        account = directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        stored = directory.store.get_account(account.id)
        assert stored.password_hash and stored.password_hash != SHORT_PASSWORD

    def test_strong_password_flag(self, directory: AccountDirectory) -> None:
        weak = directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        strong = directory.register("bob", "bob@example.com", STRONG_PASSWORD)
        assert weak.strong_password is False
        assert strong.strong_password is True

    def test_account_created_activity(self, directory: AccountDirectory) -> None:
        account = directory.register(
            "alice", "alice@example.com", SHORT_PASSWORD, ip_address="10.0.0.1", user_agent="pytest"
        )
        entries = directory.activity.list_recent(account.id)
        assert [e.activity for e in entries] == ["Account created"]
        assert entries[0].ip_address == "10.0.0.1"
        assert entries[0].user_agent == "pytest"


class TestUniqueness:
    def test_duplicate_email(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(ConflictError) as exc_info:
            directory.register("alice2", "alice@example.com", SHORT_PASSWORD)
        assert exc_info.value.field == "email"

    def test_duplicate_username(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(ConflictError) as exc_info:
            directory.register("alice", "other@example.com", SHORT_PASSWORD)
        assert exc_info.value.field == "username"

    def test_email_checked_before_username(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(ConflictError) as exc_info:
            directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        assert exc_info.value.field == "email"

    def test_username_is_case_sensitive(self, directory: AccountDirectory, alice) -> None:
        other = directory.register("Alice", "alice2@example.com", SHORT_PASSWORD)
        assert other.id != alice.id

    def test_email_reported_when_both_fields_collide_on_different_accounts(
        self, directory: AccountDirectory, alice
    ) -> None:
        directory.register("bob", "bob@example.com", SHORT_PASSWORD)
        with pytest.raises(ConflictError) as exc_info:
            directory.register("alice", "bob@example.com", SHORT_PASSWORD)
        assert exc_info.value.field == "email"

    def test_store_reports_email_first_across_accounts(self, directory: AccountDirectory, alice) -> None:
        """alice owns the username, bob owns the email; the store names the email."""
        bob = directory.register("bob", "bob@example.com", SHORT_PASSWORD)
        clash = directory.store.get_account(bob.id)
        clash.id = "clash-id"
        clash.username = "alice"
        with pytest.raises(ConflictError) as exc_info:
            directory.store.add_account(clash)
        assert exc_info.value.field == "email"

    def test_conflict_does_not_log_activity(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(ConflictError):
            directory.register("alice", "alice@example.com", SHORT_PASSWORD)
        assert len(directory.activity.list_recent(alice.id)) == 1


class TestConcurrentRegistration:
    """Racing registrations for one email must produce exactly one account."""

    def test_only_one_wins(self) -> None:
        directory = AccountDirectory(
            store=InMemoryStorage(), vault=CredentialVault(rounds=TEST_ROUNDS), tokens=TokenIssuer(TEST_SECRET)
        )
        results: list[str] = []
        barrier = threading.Barrier(8)

        def attempt(i: int) -> None:
            barrier.wait()
            try:
                directory.register(f"user{i}", "race@example.com", SHORT_PASSWORD)
                results.append("ok")
            except ConflictError:
                results.append("conflict")

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == 7

    def test_store_backstop_rejects_duplicate(self, directory: AccountDirectory, alice) -> None:
        """The backend refuses a duplicate even if the directory check is bypassed."""
        stored = directory.store.get_account(alice.id)
        stored.id = "another-id"
        with pytest.raises(ConflictError):
            directory.store.add_account(stored)


class TestAuthenticate:
    def test_wrong_password_and_unknown_email_look_identical(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(AuthenticationError) as wrong:
            directory.authenticate("alice@example.com", "wrong")
        with pytest.raises(AuthenticationError) as unknown:
            directory.authenticate("nobody@example.com", SHORT_PASSWORD)
        assert type(wrong.value) is type(unknown.value)
        assert wrong.value.message == unknown.value.message
        assert wrong.value.code == unknown.value.code

    def test_success_stamps_last_login(self, directory: AccountDirectory, alice) -> None:
        authed = directory.authenticate("alice@example.com", SHORT_PASSWORD)
        assert authed.last_login is not None
        assert directory.get_by_id(alice.id).last_login == authed.last_login

    def test_success_is_redacted(self, directory: AccountDirectory, alice) -> None:
        assert directory.authenticate("alice@example.com", SHORT_PASSWORD).password_hash is None

    def test_success_logs_activity(self, directory: AccountDirectory, alice) -> None:
        directory.authenticate("alice@example.com", SHORT_PASSWORD, ip_address="10.0.0.2")
        latest = directory.activity.list_recent(alice.id, limit=1)[0]
        assert latest.activity == "Successful login"
        assert latest.ip_address == "10.0.0.2"

    def test_failure_logs_nothing(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(AuthenticationError):
            directory.authenticate("alice@example.com", "wrong")
        assert len(directory.activity.list_recent(alice.id)) == 1

    def test_email_match_is_exact(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(AuthenticationError):
            directory.authenticate("ALICE@example.com", SHORT_PASSWORD)


class TestInputContract:
    @pytest.mark.parametrize("username", ["ab", "x" * 51])
    def test_username_length(self, directory: AccountDirectory, username: str) -> None:
        with pytest.raises(ValidationError):
            directory.register(username, "u@example.com", SHORT_PASSWORD)

    @pytest.mark.parametrize("username", ["abc", "x" * 50])
    def test_username_bounds_accepted(self, directory: AccountDirectory, username: str) -> None:
        assert directory.register(username, "u@example.com", SHORT_PASSWORD).username == username

    @pytest.mark.parametrize("email", ["not-an-email", "a@", "@example.com", ""])
    def test_email_syntax(self, directory: AccountDirectory, email: str) -> None:
        with pytest.raises(ValidationError):
            directory.register("alice", email, SHORT_PASSWORD)

    @pytest.mark.parametrize(
        "password",
        [
            "Sh0rt!",  # too short
            "alllower1!",  # no uppercase
            "ALLUPPER1!",  # no lowercase
            "NoDigits!!",  # no digit
            "NoSpecial12",  # no special
            "Aa1!" + "x" * 80,  # beyond bcrypt's 72 bytes
        ],
    )
    def test_password_policy(self, directory: AccountDirectory, password: str) -> None:
        with pytest.raises(ValidationError):
            directory.register("alice", "alice@example.com", password)

    def test_validation_error_does_not_echo_password(self, directory: AccountDirectory) -> None:
        with pytest.raises(ValidationError) as exc_info:
            directory.register("alice", "alice@example.com", "nouppercase1!")
        assert "nouppercase1!" not in str(exc_info.value)
        assert "nouppercase1!" not in (exc_info.value.detail or "")

    def test_rejected_registration_stores_nothing(self, directory: AccountDirectory) -> None:
        with pytest.raises(ValidationError):
            directory.register("alice", "alice@example.com", "weak")
        assert directory.store.get_account_by_email("alice@example.com") is None


class TestLogin:
    def test_login_issues_token_for_account(self, directory: AccountDirectory, alice) -> None:
        result = directory.login("alice@example.com", SHORT_PASSWORD, device_info="pytest", ip_address="10.0.0.3")
        claims = directory.tokens.verify(result.token)
        assert claims.id == alice.id
        assert claims.email == "alice@example.com"
        assert claims.username == "alice"
        assert claims.role == "user"
        assert result.expires_in == 24 * 3600

    def test_login_opens_session(self, directory: AccountDirectory, alice) -> None:
        result = directory.login("alice@example.com", SHORT_PASSWORD, device_info="pytest", ip_address="10.0.0.3")
        sessions = directory.sessions.list(alice.id)
        assert [s.id for s in sessions] == [result.session.id]
        assert sessions[0].device_info == "pytest"
        assert sessions[0].ip_address == "10.0.0.3"

    def test_login_activity_order(self, directory: AccountDirectory, alice) -> None:
        directory.login("alice@example.com", SHORT_PASSWORD)
        activities = [e.activity for e in directory.activity.list_recent(alice.id)]
        assert activities == ["New session created", "Successful login", "Account created"]

    @pytest.mark.parametrize("email", ["not-an-email", "alice@", ""])
    def test_malformed_email_is_validation_error(self, directory: AccountDirectory, alice, email: str) -> None:
        with pytest.raises(ValidationError):
            directory.login(email, SHORT_PASSWORD)
        assert directory.sessions.list(alice.id) == []

    def test_failed_login_opens_no_session(self, directory: AccountDirectory, alice) -> None:
        with pytest.raises(AuthenticationError):
            directory.login("alice@example.com", "wrong")
        assert directory.sessions.list(alice.id) == []

    def test_token_survives_session_revoke(self, directory: AccountDirectory, alice) -> None:
        """Token validity is independent of session state."""
        result = directory.login("alice@example.com", SHORT_PASSWORD)
        assert directory.sessions.revoke(alice.id, result.session.id) is True
        assert directory.tokens.verify(result.token) is not None


def test_get_by_id_unknown(directory: AccountDirectory) -> None:
    assert directory.get_by_id("missing") is None


class TestBuildDirectory:
    def test_in_memory_by_default(self) -> None:
        from core.config import Settings

        directory = build_directory(Settings(debug=True, bcrypt_rounds=TEST_ROUNDS, database_url=""))
        assert isinstance(directory.store, InMemoryStorage)
        assert directory.vault.rounds == TEST_ROUNDS

    def test_sql_backend_from_url(self) -> None:
        from auth.sql_store import SqlStorage
        from core.config import Settings

        directory = build_directory(Settings(debug=True, bcrypt_rounds=TEST_ROUNDS, database_url="sqlite://"))
        try:
            assert isinstance(directory.store, SqlStorage)
        finally:
            directory.close()
