import threading
from datetime import timedelta

import pytest

from authcore.auth.passwords import CredentialHash, CredentialHasher
from authcore.config import Settings
from authcore.errors import (
    AccountLockedError,
    DuplicateIdentityError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidIdentityError,
    MalformedHashError,
    NotFoundError,
    RevokedTokenError,
    TokenError,
    WeakSecretError,
)
from authcore.services.auth_service import AuthService


def test_alice_register_login_logout(auth):
    info = auth.register("alice", b"s3cret!!")
    assert info.identity == "alice"
    assert info.email is None

    s = auth.login("alice", b"s3cret!!")
    assert auth.current_identity(s.token) == "alice"

    auth.logout(s.token)
    with pytest.raises((ExpiredTokenError, RevokedTokenError)):
        auth.current_identity(s.token)


def test_change_password_revokes_other_sessions(auth):
    auth.register("alice", b"s3cret!!")
    s1 = auth.login("alice", b"s3cret!!")
    s2 = auth.login("alice", b"s3cret!!")

    assert auth.change_password("alice", b"s3cret!!", b"newpass99") == 2

    for s in (s1, s2):
        with pytest.raises(RevokedTokenError):
            auth.current_identity(s.token)
    with pytest.raises(InvalidCredentialsError):
        auth.login("alice", b"s3cret!!")
    assert auth.current_identity(auth.login("alice", b"newpass99").token) == "alice"


def test_register_validation_errors(auth):
    with pytest.raises(WeakSecretError):
        auth.register("test", b"123")
    assert "test" not in auth.accounts
    auth.register("shanavas", b"secure123", "shanavas@example.com")
    with pytest.raises(DuplicateIdentityError):
        auth.register("shanavas", b"another1")
    for bad in ("", " alice", "alice ", "al\nice", "x" * 65):
        with pytest.raises(InvalidIdentityError):
            auth.register(bad, b"s3cret!!")


def test_register_keeps_optional_email(auth):
    auth.register("shanavas", b"secure123", "shanavas@example.com")
    auth.register("sidharth", b"pass4567", "  ")
    assert auth.describe("shanavas").email == "shanavas@example.com"
    assert auth.describe("sidharth").email is None


def test_concurrent_register_has_one_winner(auth):
    n = 8
    barrier = threading.Barrier(n)
    results = []

    def worker(i):
        barrier.wait()
        try:
            auth.register("alice", f"s3cret-{i:02d}".encode())
            results.append("ok")
        except DuplicateIdentityError:
            results.append("dup")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count("ok") == 1
    assert results.count("dup") == n - 1
    assert len(auth.accounts) == 1


def test_unknown_user_and_wrong_password_look_the_same(auth):
    auth.register("alice", b"s3cret!!")
    with pytest.raises(InvalidCredentialsError) as wrong:
        auth.login("alice", b"wrongpass")
    with pytest.raises(InvalidCredentialsError) as unknown:
        auth.login("nonexistent", b"wrongpass")
    with pytest.raises(InvalidCredentialsError) as invalid:
        auth.login("", b"wrongpass")
    assert str(wrong.value) == str(unknown.value) == str(invalid.value)


def test_lockout_and_recovery(auth, clock):
    auth.register("alice", b"s3cret!!")
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth.login("alice", b"wrongpass")

    with pytest.raises(AccountLockedError) as exc:
        auth.login("alice", b"s3cret!!")
    assert exc.value.locked_until == clock() + timedelta(seconds=900)
    assert auth.accounts.get("alice").failed_attempt_count == 5

    clock.advance(seconds=899)
    with pytest.raises(AccountLockedError):
        auth.login("alice", b"s3cret!!")

    clock.advance(seconds=1)
    s = auth.login("alice", b"s3cret!!")
    assert auth.current_identity(s.token) == "alice"
    acc = auth.accounts.get("alice")
    assert acc.failed_attempt_count == 0
    assert acc.locked_until is None


def test_locked_account_skips_hasher(auth, monkeypatch):
    auth.register("alice", b"s3cret!!")
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth.login("alice", b"wrongpass")

    def boom(*args, **kwargs):
        raise AssertionError("hasher must not run for a locked account")

    monkeypatch.setattr(auth.hasher, "verify", boom)
    with pytest.raises(AccountLockedError):
        auth.login("alice", b"s3cret!!")


def test_failure_after_lockout_extends_backoff(auth, clock):
    auth.register("alice", b"s3cret!!")
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth.login("alice", b"wrongpass")
    clock.advance(seconds=900)
    with pytest.raises(InvalidCredentialsError):
        auth.login("alice", b"wrongpass")
    # threshold + 1 failures -> doubled window
    assert auth.accounts.get("alice").locked_until == clock() + timedelta(seconds=1800)


def test_successful_login_resets_counter(auth):
    auth.register("alice", b"s3cret!!")
    for _ in range(3):
        with pytest.raises(InvalidCredentialsError):
            auth.login("alice", b"wrongpass")
    auth.login("alice", b"s3cret!!")
    assert auth.accounts.get("alice").failed_attempt_count == 0


def test_logout_is_idempotent(auth):
    auth.register("alice", b"s3cret!!")
    s = auth.login("alice", b"s3cret!!")
    auth.logout(s.token)
    auth.logout(s.token)
    auth.logout("never-issued")
    with pytest.raises(TokenError):
        auth.current_identity(s.token)


def test_session_expires_after_ttl(auth, clock):
    auth.register("alice", b"s3cret!!")
    s = auth.login("alice", b"s3cret!!")
    clock.advance(hours=1)
    with pytest.raises(ExpiredTokenError):
        auth.current_identity(s.token)


def test_multiple_devices(auth):
    auth.register("alice", b"s3cret!!")
    a = auth.login("alice", b"s3cret!!")
    b = auth.login("alice", b"s3cret!!")
    assert a.token != b.token
    auth.logout(a.token)
    assert auth.current_identity(b.token) == "alice"
    assert auth.logout_everywhere(b.token) == 1
    with pytest.raises(RevokedTokenError):
        auth.current_identity(b.token)


def test_change_password_checks(auth):
    auth.register("alice", b"s3cret!!")
    s = auth.login("alice", b"s3cret!!")
    with pytest.raises(InvalidCredentialsError):
        auth.change_password("alice", b"wrongpass", b"newpass99")
    with pytest.raises(WeakSecretError):
        auth.change_password("alice", b"s3cret!!", b"short")
    with pytest.raises(InvalidCredentialsError):
        auth.change_password("ghost", b"s3cret!!", b"newpass99")
    # Nothing changed so far.
    assert auth.current_identity(s.token) == "alice"
    assert auth.accounts.get("alice").failed_attempt_count == 1


def test_change_password_respects_lockout(auth):
    auth.register("alice", b"s3cret!!")
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth.change_password("alice", b"wrongpass", b"newpass99")
    with pytest.raises(AccountLockedError):
        auth.change_password("alice", b"s3cret!!", b"newpass99")


def test_concurrent_change_password_single_winner(auth):
    auth.register("alice", b"s3cret!!")
    barrier = threading.Barrier(2)
    results = []

    def worker(new):
        barrier.wait()
        try:
            auth.change_password("alice", b"s3cret!!", new)
            results.append(new)
        except InvalidCredentialsError:
            results.append(None)

    threads = [threading.Thread(target=worker, args=(p,)) for p in (b"newpass99", b"other-pass1")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    auth.login("alice", winners[0])


def test_delete_account_revokes_sessions(auth):
    auth.register("alice", b"s3cret!!")
    s = auth.login("alice", b"s3cret!!")
    assert auth.delete_account("alice") == 1
    with pytest.raises(RevokedTokenError):
        auth.current_identity(s.token)
    with pytest.raises(InvalidCredentialsError):
        auth.login("alice", b"s3cret!!")
    with pytest.raises(DuplicateIdentityError):
        auth.register("alice", b"s3cret!!")
    with pytest.raises(NotFoundError):
        auth.delete_account("alice")


def test_unlock_clears_lockout(auth):
    auth.register("alice", b"s3cret!!")
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth.login("alice", b"wrongpass")
    auth.unlock("alice")
    auth.login("alice", b"s3cret!!")


def test_malformed_hash_is_logged_and_raised(auth, caplog):
    auth.register("alice", b"s3cret!!")
    auth.accounts.update_credential("alice", CredentialHash(algorithm="argon2id", encoded="$argon2id$v=19$junk$$"))
    with pytest.raises(MalformedHashError):
        auth.login("alice", b"s3cret!!")
    assert any(r.levelname == "CRITICAL" for r in caplog.records)


def test_login_upgrades_outdated_hash(auth):
    weak = CredentialHasher(time_cost=1, memory_cost=8, parallelism=1)
    auth.register("alice", b"s3cret!!")
    auth.hasher = CredentialHasher(time_cost=2, memory_cost=8, parallelism=1)
    old = auth.accounts.get("alice").credential_hash
    assert weak.verify(b"s3cret!!", old)

    auth.login("alice", b"s3cret!!")
    new = auth.accounts.get("alice").credential_hash
    assert new != old
    assert not auth.hasher.needs_rehash(new)
    assert auth.hasher.verify(b"s3cret!!", new)


def test_never_logs_secrets(auth, caplog):
    caplog.set_level("DEBUG", logger="authcore")
    auth.register("alice", b"s3cret!!", "alice@example.com")
    s = auth.login("alice", b"s3cret!!")
    with pytest.raises(InvalidCredentialsError):
        auth.login("alice", b"wrong-guess")
    auth.logout(s.token)
    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "s3cret!!" not in text
    assert "wrong-guess" not in text
    assert s.token not in text
    assert "alice@example.com" not in text


def test_from_settings_builds_yaml_backed_service(tmp_path, settings):
    from dataclasses import replace

    cfg = replace(settings, users_path=tmp_path / "users.yml")
    auth = AuthService.from_settings(cfg)
    auth.register("alice", b"s3cret!!")
    again = AuthService.from_settings(cfg)
    s = again.login("alice", b"s3cret!!")
    assert again.current_identity(s.token) == "alice"


def test_from_settings_in_memory():
    auth = AuthService.from_settings(Settings(argon2_time_cost=1, argon2_memory_cost=8, argon2_parallelism=1))
    auth.register("alice", b"s3cret!!")
    assert auth.session_ttl == timedelta(hours=8)


def test_login_logout_cycles_stay_bounded(accounts, hasher, clock):
    from authcore.auth.session import SessionRegistry

    auth = AuthService(
        accounts=accounts,
        sessions=SessionRegistry(clock=clock, sweep_every=10),
        hasher=hasher,
        clock=clock,
    )
    auth.register("alice", b"s3cret!!")
    for _ in range(50):
        auth.logout(auth.login("alice", b"s3cret!!").token)
    assert len(auth.sessions) <= 10


def test_identity_locks_are_dropped_on_delete(auth):
    auth.register("alice", b"s3cret!!")
    auth.login("alice", b"s3cret!!")
    assert len(auth._locks) == 1
    auth.delete_account("alice")
    assert len(auth._locks) == 0
    with pytest.raises(NotFoundError):
        auth.delete_account("ghost")
    with pytest.raises(NotFoundError):
        auth.unlock("ghost")
    assert len(auth._locks) == 0
