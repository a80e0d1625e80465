"""Tests for request/response exchange types."""

import pytest

from dinutri_offline.core.exceptions import BodyConsumedError
from dinutri_offline.models.exchange import (
    FetchRequest,
    OwnedResponse,
    RequestMode,
    ResponseSnapshot,
    to_cache_key,
)

# =============================================================================
# FetchRequest Tests
# =============================================================================


class TestFetchRequest:
    """Tests for request parsing."""

    def test_cache_key_is_path_and_query(self) -> None:
        request = FetchRequest.get("http://gw.test/api/patients?page=2#top")
        assert request.cache_key == "/api/patients?page=2"
        assert request.path == "/api/patients"

    def test_root_url_key(self) -> None:
        assert FetchRequest.get("http://gw.test").cache_key == "/"

    def test_method_normalized(self) -> None:
        assert FetchRequest(url="http://gw.test/", method="post").method == "POST"

    def test_headers_lowercased(self) -> None:
        request = FetchRequest.get("http://gw.test/", headers={"Accept": "text/html"})
        assert request.headers == {"accept": "text/html"}

    def test_extension_scheme(self) -> None:
        request = FetchRequest.get("chrome-extension://abcdef/content.js")
        assert request.is_web_scheme is False

    def test_navigation(self) -> None:
        request = FetchRequest.get("http://gw.test/", mode=RequestMode.NAVIGATE)
        assert request.is_navigation is True


class TestToCacheKey:
    def test_relative_path(self) -> None:
        assert to_cache_key("/manifest.json") == "/manifest.json"

    def test_absolute_url(self) -> None:
        assert to_cache_key("http://gw.test/manifest.json?v=1") == "/manifest.json?v=1"

    def test_request(self) -> None:
        assert to_cache_key(FetchRequest.get("http://gw.test/a")) == "/a"

    def test_relative_path_percent_encoded_like_request(self) -> None:
        request = FetchRequest.get("http://gw.test/logo dinutri.png")

        assert to_cache_key("/logo dinutri.png") == "/logo%20dinutri.png"
        assert to_cache_key("/logo dinutri.png") == to_cache_key(request)

    def test_relative_fragment_dropped(self) -> None:
        assert to_cache_key("/patients?id=1#notes") == "/patients?id=1"


class TestCredentialScope:
    HEADERS = ("authorization", "cookie")

    def test_anonymous(self) -> None:
        request = FetchRequest.get("http://gw.test/api/me")
        assert request.credential_scope(self.HEADERS) is None

    def test_same_credentials_same_scope(self) -> None:
        first = FetchRequest.get("http://gw.test/a", headers={"Cookie": "sid=alice"})
        second = FetchRequest.get("http://gw.test/b", headers={"cookie": "sid=alice"})

        scope = first.credential_scope(self.HEADERS)
        assert scope is not None
        assert len(scope) == 16
        assert scope == second.credential_scope(self.HEADERS)

    def test_different_users_differ(self) -> None:
        alice = FetchRequest.get("http://gw.test/a", headers={"Cookie": "sid=alice"})
        bob = FetchRequest.get("http://gw.test/a", headers={"Cookie": "sid=bob"})

        assert alice.credential_scope(self.HEADERS) != bob.credential_scope(
            self.HEADERS
        )

    def test_unlisted_headers_ignored(self) -> None:
        request = FetchRequest.get("http://gw.test/a", headers={"X-Token": "abc"})
        assert request.credential_scope(self.HEADERS) is None


# =============================================================================
# OwnedResponse Tests
# =============================================================================


class TestOwnedResponse:
    """Tests for single-read body ownership."""

    def test_read_once(self) -> None:
        response = OwnedResponse(200, body=b"hello")
        assert response.read() == b"hello"
        assert response.body_used is True
        with pytest.raises(BodyConsumedError):
            response.read()

    def test_clone_gives_independent_copy(self) -> None:
        response = OwnedResponse(200, headers={"Content-Type": "text/plain"}, body=b"x")
        clone = response.clone()

        assert clone.read() == b"x"
        assert response.body_used is False
        assert response.read() == b"x"
        assert clone.headers == {"content-type": "text/plain"}

    def test_clone_after_read_fails(self) -> None:
        response = OwnedResponse(200, body=b"x")
        response.read()
        with pytest.raises(BodyConsumedError):
            response.clone()

    def test_ok_range(self) -> None:
        assert OwnedResponse(204).ok is True
        assert OwnedResponse(304).ok is False
        assert OwnedResponse(404).ok is False

    def test_json(self) -> None:
        assert OwnedResponse(200, body=b'{"a": 1}').json() == {"a": 1}


# =============================================================================
# ResponseSnapshot Tests
# =============================================================================


class TestResponseSnapshot:
    """Tests for stored snapshots."""

    def test_from_response_consumes_it(self) -> None:
        response = OwnedResponse(200, body=b"body", url="http://gw.test/")
        snapshot = ResponseSnapshot.from_response(response)

        assert snapshot.body == b"body"
        assert snapshot.url == "http://gw.test/"
        assert response.body_used is True

    def test_dict_keeps_binary_body(self) -> None:
        snapshot = ResponseSnapshot(
            status=200,
            headers={"content-type": "image/png"},
            body=b"\x89PNG\r\n\x00",
        )
        restored = ResponseSnapshot.from_dict(snapshot.to_dict())

        assert restored.body == b"\x89PNG\r\n\x00"
        assert restored.headers == {"content-type": "image/png"}
        assert restored.stored_at == snapshot.stored_at

    def test_to_response_is_fresh_each_time(self) -> None:
        snapshot = ResponseSnapshot(status=200, headers={}, body=b"x")
        first = snapshot.to_response()
        first.read()
        assert snapshot.to_response().read() == b"x"
