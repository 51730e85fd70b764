"""
Unit tests for the SessionManager.
"""

from unittest.mock import MagicMock, patch

import pytest

from sealbox.core.exceptions import IOFailure, SessionLockedError
from sealbox.core.models import Algorithm, KeyMaterial
from sealbox.security.session import SessionManager


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def session_manager():
    return SessionManager(ttl_seconds=300)


@pytest.fixture
def key():
    return KeyMaterial.generate(Algorithm.AES_256_GCM)


@pytest.fixture
def mock_keystore():
    with patch("sealbox.security.session.save_key") as mock_save, \
            patch("sealbox.security.session.load_key") as mock_load, \
            patch("sealbox.security.session.delete_key") as mock_delete, \
            patch("sealbox.security.session.assess_keyring_backend") as mock_assess:
        mock_assess.return_value = (True, "backend looks acceptable")
        yield {
            "save": mock_save,
            "load": mock_load,
            "delete": mock_delete,
            "assess": mock_assess,
        }


# ==============================================================================
# Tests: Lifecycle
# ==============================================================================

def test_starts_locked(session_manager):
    assert session_manager.unlocked is False
    with pytest.raises(SessionLockedError, match="session is locked"):
        session_manager.get_key()


def test_unlock_with_key(session_manager, key):
    session_manager.unlock_with_key(key)
    assert session_manager.get_key() is key
    assert session_manager.unlocked


def test_unlock_requires_key_material(session_manager):
    with pytest.raises(TypeError):
        session_manager.unlock_with_key(b"\x00" * 32)


def test_lock_wipes_key(session_manager, key):
    session_manager.unlock_with_key(key)
    session_manager.lock()
    assert key.wiped
    with pytest.raises(SessionLockedError):
        session_manager.get_key()


def test_expiry_auto_locks(session_manager, key):
    with patch("time.time") as mock_time:
        mock_time.return_value = 1000.0
        session_manager.unlock_with_key(key, ttl_seconds=300)

        mock_time.return_value = 1301.0
        with pytest.raises(SessionLockedError, match="expired"):
            session_manager.get_key()
    assert key.wiped
    with pytest.raises(SessionLockedError, match="session is locked"):
        session_manager.get_key()


def test_extend(session_manager, key):
    with patch("time.time") as mock_time:
        mock_time.return_value = 1000.0
        session_manager.unlock_with_key(key, ttl_seconds=100)
        session_manager.extend(100)

        mock_time.return_value = 1150.0
        assert session_manager.get_key() is key


def test_extend_when_locked(session_manager):
    with pytest.raises(SessionLockedError):
        session_manager.extend(10)


def test_relock_replaces_and_wipes_previous_key(session_manager, key):
    session_manager.unlock_with_key(key)
    replacement = KeyMaterial.generate()
    session_manager.unlock_with_key(replacement)
    assert key.wiped
    assert session_manager.get_key() is replacement


def test_unlock_with_profile(session_manager, key):
    manager = MagicMock()
    manager.unlock.return_value = key
    session_manager.unlock_with_profile(manager, "alice", "pw")
    manager.unlock.assert_called_once_with("alice", "pw")
    assert session_manager.user_id == "alice"
    assert session_manager.get_key() is key


def test_context_manager_locks(key):
    with SessionManager() as session:
        session.unlock_with_key(key)
    assert key.wiped
    assert session.unlocked is False


# ==============================================================================
# Tests: OS keystore
# ==============================================================================

def test_persist_to_keyring(session_manager, key, mock_keystore):
    session_manager.unlock_with_key(key)
    session_manager.persist_to_keyring("svc", "alice")
    mock_keystore["save"].assert_called_once_with("svc", "alice", key.raw)


def test_persist_refuses_insecure_backend(session_manager, key, mock_keystore):
    mock_keystore["assess"].return_value = (False, "insecure backend detected: PlaintextKeyring")
    session_manager.unlock_with_key(key)
    with pytest.raises(IOFailure, match="refusing to persist"):
        session_manager.persist_to_keyring("svc", "alice")
    mock_keystore["save"].assert_not_called()


def test_persist_force_skips_check(session_manager, key, mock_keystore):
    mock_keystore["assess"].return_value = (False, "insecure")
    session_manager.unlock_with_key(key)
    session_manager.persist_to_keyring("svc", "alice", force=True)
    mock_keystore["assess"].assert_not_called()
    mock_keystore["save"].assert_called_once()


def test_persist_when_locked(session_manager, mock_keystore):
    with pytest.raises(SessionLockedError):
        session_manager.persist_to_keyring("svc", "alice")


def test_load_from_keyring(session_manager, mock_keystore):
    mock_keystore["load"].return_value = b"\x42" * 32
    session_manager.load_from_keyring("svc", "alice")
    assert session_manager.get_key().raw == b"\x42" * 32
    assert session_manager.get_key().algorithm is Algorithm.AES_256_GCM


def test_load_from_keyring_missing(session_manager, mock_keystore):
    mock_keystore["load"].return_value = None
    with pytest.raises(SessionLockedError, match="no key found"):
        session_manager.load_from_keyring("svc", "alice")


def test_delete_from_keyring(session_manager, mock_keystore):
    mock_keystore["delete"].return_value = True
    assert session_manager.delete_from_keyring("svc", "alice") is True
    mock_keystore["delete"].assert_called_once_with("svc", "alice")
