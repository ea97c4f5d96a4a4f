"""Tests for the session identifier."""

from opmeter import session
from opmeter.config import SessionConfig, set_session_config


class TestSessionUuid:
    """Tests for session UUID shortening."""

    def test_default_size(self):
        """Default short UUID has 5 characters."""
        assert len(session.short_session_uuid()) == 5

    def test_suffix_of_full_uuid(self):
        """Short UUID is the tail of the full UUID."""
        assert session.session_uuid.endswith(session.short_session_uuid())

    def test_configured_size(self):
        """Size follows SessionConfig."""
        set_session_config(SessionConfig(uuid_size=12))
        assert len(session.short_session_uuid()) == 12

    def test_stable_within_process(self):
        """Repeated calls return the same value."""
        assert session.short_session_uuid() == session.short_session_uuid()
