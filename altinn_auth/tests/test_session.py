"""
Session Cookie Tests

Covers the cookie codec (encode/decode, percent-encoding tolerance, fallback
to an empty record) and the cookie helpers.
"""

import base64
import json
from urllib.parse import quote

import pytest
from fastapi import Response

from altinn_auth.auth.session import (
    SESSION_COOKIE_NAME,
    clear_session,
    decode_session,
    encode_session,
    find_session_cookie,
    write_session,
)
from altinn_auth.models import SessionRecord


def _payload_of(encoded: str) -> dict:
    padded = encoded + "=" * (-len(encoded) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))


def _attributes(set_cookie: str) -> list:
    return [part.strip().lower() for part in set_cookie.split(";")[1:]]


@pytest.fixture
def authenticated_record():
    return SessionRecord(
        access_token="tok",
        id_token="id.tok.en",
        token_expires_at=1_700_000_000_000,
        user_info={"sub": "abc", "pid": "01017012345", "name": "Ærlig Øvre Ås"},
        id_token_claims={"sub": "abc", "acr": "idporten-loa-substantial"},
        authorization_details=[{"type": "ansattporten:altinn:service", "resource": "urn:altinn:resource:x"}],
    )


@pytest.fixture
def pending_record():
    return SessionRecord(oauth_state="state-1", oauth_nonce="nonce-1", code_verifier="v" * 43)


class TestCodec:

    def test_round_trip_authenticated(self, authenticated_record):
        assert decode_session(encode_session(authenticated_record)) == authenticated_record

    def test_round_trip_pending(self, pending_record):
        assert decode_session(encode_session(pending_record)) == pending_record

    def test_round_trip_empty(self):
        assert decode_session(encode_session(SessionRecord())) == SessionRecord()

    def test_round_trip_after_percent_encoding(self, authenticated_record):
        encoded = encode_session(authenticated_record)
        padded = encoded + "=" * (-len(encoded) % 4)
        assert decode_session(quote(padded, safe="")) == authenticated_record

    def test_percent_encoded_padding_is_retried(self, pending_record):
        encoded = encode_session(pending_record)
        # force at least one '=' so the percent-encoded form differs
        transported = quote(encoded + "==", safe="")
        assert "%3D" in transported
        assert decode_session(transported) == pending_record

    def test_encoded_value_is_unpadded_base64url(self, authenticated_record):
        encoded = encode_session(authenticated_record)
        assert "=" not in encoded
        assert "+" not in encoded
        assert "/" not in encoded

    def test_absent_fields_are_not_serialized(self, pending_record):
        payload = _payload_of(encode_session(pending_record))
        assert payload == {
            "oauthState": "state-1",
            "oauthNonce": "nonce-1",
            "codeVerifier": "v" * 43,
        }
        assert None not in payload.values()

    def test_payload_uses_camel_case(self, authenticated_record):
        payload = _payload_of(encode_session(authenticated_record))
        assert payload["accessToken"] == "tok"
        assert payload["tokenExpiresAt"] == 1_700_000_000_000
        assert "access_token" not in payload

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "not base64 at all!",
        "%%%",
        base64.urlsafe_b64encode(b"[1, 2, 3]").decode(),
        base64.urlsafe_b64encode(b"not json").decode(),
        base64.urlsafe_b64encode(b'{"accessToken": 42}').decode(),
    ])
    def test_garbage_decodes_to_empty_record(self, raw):
        assert decode_session(raw) == SessionRecord()

    def test_unknown_keys_are_ignored(self):
        raw = base64.urlsafe_b64encode(json.dumps({"accessToken": "tok", "foo": 1}).encode()).decode()
        assert decode_session(raw) == SessionRecord(access_token="tok")


class TestCookieLookup:

    def test_exact_name(self):
        assert find_session_cookie({SESSION_COOKIE_NAME: "abc"}) == "abc"

    def test_case_insensitive_fallback(self):
        assert find_session_cookie({"Altinn-Session": "abc"}) == "abc"

    def test_exact_name_wins(self):
        cookies = {"ALTINN-SESSION": "other", SESSION_COOKIE_NAME: "abc"}
        assert find_session_cookie(cookies) == "abc"

    def test_missing(self):
        assert find_session_cookie({"unrelated": "x"}) is None


class TestCookieHelpers:

    def test_write_session_attributes(self, settings, pending_record):
        response = Response()
        write_session(response, pending_record, settings)

        header = response.headers["set-cookie"]
        assert header.startswith(f"{SESSION_COOKIE_NAME}=")
        attributes = _attributes(header)
        assert "httponly" in attributes
        assert "samesite=lax" in attributes
        assert "path=/" in attributes
        assert "max-age=86400" in attributes
        assert "secure" not in attributes

    def test_write_session_secure_in_production(self, settings, pending_record):
        production = settings.model_copy(update={"ENVIRONMENT": "production"})
        response = Response()
        write_session(response, pending_record, production)
        assert "secure" in _attributes(response.headers["set-cookie"])

    def test_clear_session_expires_cookie(self, settings):
        response = Response()
        clear_session(response, settings)

        header = response.headers["set-cookie"]
        assert header.startswith(f"{SESSION_COOKIE_NAME}=")
        assert "max-age=0" in _attributes(header)
