"""
Tests for the restricted (reader) and full (accessor) session profiles.
"""

from datetime import datetime, timedelta, timezone

import pytest
from starlette.responses import Response

from sessiongate.core.exceptions import ConfigurationError
from sessiongate.core.security import SessionAccessor, SessionReader, SessionSecretProvider
from sessiongate.models.session_record import SessionPatch, SessionRecord

from conftest import (
    COOKIE_NAME,
    SECRET_NAME,
    StaticSecretSource,
    make_request,
    open_session,
    seal_session,
    set_cookie_token
)


class TestReadFailuresAreNoSession:
    """Anything that does not open cleanly reads as 'no session'"""

    def test_no_cookie(self, accessor):
        request = make_request()
        assert accessor.get_session(request) is None
        assert not accessor.is_authenticated(request)

    def test_no_cookie_does_not_need_the_secret(self):
        source = StaticSecretSource(None)
        accessor = SessionAccessor(SessionSecretProvider(SECRET_NAME, sources=[source]), cookie_name=COOKIE_NAME)

        assert accessor.get_session(make_request()) is None
        assert source.calls == 0

    def test_garbage_cookie(self, accessor):
        assert accessor.get_session(make_request(cookie="not-a-session")) is None

    def test_cookie_sealed_with_another_secret(self, accessor, identity):
        token = seal_session(identity, secret="some-other-secret-that-is-long-enough")
        assert accessor.get_session(make_request(cookie=token)) is None

    def test_record_without_identity(self, accessor):
        token = seal_session(None, metadata={"csrfToken": "abc123"})
        request = make_request(cookie=token)

        assert accessor.read(request) is not None
        assert accessor.get_session(request) is None
        assert not accessor.is_authenticated(request)

    def test_missing_secret_with_cookie_propagates(self, identity):
        accessor = SessionAccessor(
            SessionSecretProvider(SECRET_NAME, sources=[StaticSecretSource(None)]),
            cookie_name=COOKIE_NAME,
        )
        request = make_request(cookie=seal_session(identity))

        with pytest.raises(ConfigurationError):
            accessor.get_session(request)


class TestReader:

    def test_reader_shares_cookie_codec_and_secret(self, accessor, identity):
        reader = accessor.reader()
        assert isinstance(reader, SessionReader)
        assert not isinstance(reader, SessionAccessor)
        assert reader.cookie_name == accessor.cookie_name
        assert reader.codec is accessor.codec
        assert reader.secret_provider is accessor.secret_provider

    def test_reader_has_no_write_operations(self, accessor):
        reader = accessor.reader()
        for name in ("create_session", "update_session", "clear_session"):
            assert not hasattr(reader, name)

    def test_reader_opens_what_the_accessor_seals(self, accessor, identity):
        response = Response()
        accessor.create_session(make_request(), response, identity)
        token = set_cookie_token(response)

        request = make_request(cookie=token)
        assert accessor.reader().is_authenticated(request)
        assert accessor.reader().get_user(request) == identity
        assert accessor.reader().get_user_id(request) == "jdoe"

    def test_user_helpers_without_session(self, accessor):
        request = make_request()
        assert accessor.get_user(request) is None
        assert accessor.get_user_id(request) is None


class TestCreateSession:

    def test_sets_sealed_cookie(self, accessor, identity):
        response = Response()
        record = accessor.create_session(make_request(), response, identity)

        token = set_cookie_token(response)
        assert token is not None
        assert open_session(token) == record
        assert record.identity == identity
        assert record.metadata == {}

        header = response.headers["set-cookie"].lower()
        assert "httponly" in header
        assert "secure" in header
        assert "samesite=lax" in header
        assert "path=/" in header

    def test_session_cookie_without_ttl_has_no_max_age(self, accessor, identity):
        response = Response()
        record = accessor.create_session(make_request(), response, identity)

        assert record.expiry is None
        assert "max-age" not in response.headers["set-cookie"].lower()

    def test_ttl_sets_expiry_and_max_age(self, secret_provider, identity):
        accessor = SessionAccessor(secret_provider, cookie_name=COOKIE_NAME, ttl_seconds=3600)
        response = Response()
        before = datetime.now(timezone.utc)

        record = accessor.create_session(make_request(), response, identity)

        assert record.expiry is not None
        assert before + timedelta(seconds=3590) <= record.expiry <= before + timedelta(seconds=3610)
        assert "max-age=" in response.headers["set-cookie"].lower()

    def test_visible_later_in_the_same_request(self, accessor, identity):
        request = make_request()
        accessor.create_session(request, Response(), identity)

        assert accessor.get_session(request).identity == identity


class TestUpdateSession:

    def test_merges_metadata(self, accessor, identity):
        token = seal_session(identity, metadata={"csrfToken": "abc123", "theme": "dark"})
        request = make_request(cookie=token)
        response = Response()

        updated = accessor.update_session(request, response, SessionPatch(metadata={"theme": "light", "lang": "en"}))

        assert updated.metadata == {"csrfToken": "abc123", "theme": "light", "lang": "en"}
        assert updated.identity == identity
        assert open_session(set_cookie_token(response)) == updated

    def test_later_reads_see_the_update(self, accessor, identity):
        request = make_request(cookie=seal_session(identity, metadata={"step": 1}))
        response = Response()

        accessor.update_session(request, response, SessionPatch(metadata={"step": 2}))
        accessor.update_session(request, response, SessionPatch(metadata={"done": True}))

        assert accessor.get_session(request).metadata == {"step": 2, "done": True}
        assert open_session(set_cookie_token(response)).metadata == {"step": 2, "done": True}

    def test_empty_patch_keeps_everything(self, accessor, identity):
        request = make_request(cookie=seal_session(identity, metadata={"a": "b"}))
        updated = accessor.update_session(request, Response(), SessionPatch())
        assert updated.metadata == {"a": "b"}

    def test_no_op_without_session(self, accessor):
        response = Response()

        result = accessor.update_session(make_request(), response, SessionPatch(metadata={"a": "b"}))

        assert result is None
        assert set_cookie_token(response) is None

    def test_no_op_for_identityless_record(self, accessor):
        request = make_request(cookie=seal_session(None, metadata={"a": "b"}))
        response = Response()

        assert accessor.update_session(request, response, SessionPatch(metadata={"c": "d"})) is None
        assert set_cookie_token(response) is None

    def test_ttl_expiry_is_kept(self, secret_provider, identity):
        accessor = SessionAccessor(secret_provider, cookie_name=COOKIE_NAME, ttl_seconds=600)
        request = make_request()
        created = accessor.create_session(request, Response(), identity)

        updated = accessor.update_session(request, Response(), SessionPatch(metadata={"x": 1}))

        assert updated.expiry == created.expiry


class TestClearSession:

    def test_deletes_cookie(self, accessor, identity):
        request = make_request(cookie=seal_session(identity))
        response = Response()

        accessor.clear_session(request, response)

        header = response.headers["set-cookie"]
        assert header.startswith(f"{COOKIE_NAME}=")
        assert "max-age=0" in header.lower()

    def test_later_reads_see_no_session(self, accessor, identity):
        request = make_request(cookie=seal_session(identity))
        assert accessor.get_session(request) is not None

        accessor.clear_session(request, Response())

        assert accessor.get_session(request) is None
        assert accessor.update_session(request, Response(), SessionPatch(metadata={"a": "b"})) is None


class TestFromSettings:

    def test_cookie_attributes_follow_settings(self, test_settings, secret_provider):
        test_settings.SESSION_COOKIE_SAMESITE = "strict"
        test_settings.SESSION_TTL_SECONDS = 120

        accessor = SessionAccessor.from_settings(test_settings, secret_provider)

        assert accessor.cookie_name == COOKIE_NAME
        assert accessor.samesite == "strict"
        assert accessor.ttl_seconds == 120
        assert accessor.secure is True
        assert accessor.httponly is True


def test_metadata_rejects_non_scalar_values():
    with pytest.raises(ValueError):
        SessionRecord(metadata={"nested": {"not": "allowed"}})
