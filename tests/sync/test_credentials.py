"""Tests for service-account tokens and remote credentials."""

import base64
import json
from unittest.mock import Mock

import pytest
import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from sync.clients.base import AuthError, CredentialsError
from sync.credentials import (
    RemoteCredentialsLoader,
    ServiceAccount,
    TokenManager,
    base64url,
    create_assertion,
)


@pytest.fixture(scope="module")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def account(private_key):
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return ServiceAccount(client_email="relay@example.iam.gserviceaccount.com", private_key_pem=pem)


def decode_part(part: str) -> dict:
    padded = part + "=" * (-len(part) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def token_response(value="tok-1", expires_in=3600, status_code=200):
    response = Mock(status_code=status_code)
    response.json.return_value = {"access_token": value, "expires_in": expires_in}
    return response


def make_session(*responses):
    session = Mock()
    session.headers = {}
    session.post.side_effect = list(responses)
    return session


class TestBase64url:
    """Tests for base64url."""

    def test_no_padding(self):
        """Test that padding characters are stripped."""
        assert base64url(b"a") == "YQ"
        assert base64url(b"\xfb\xff") == "-_8"


class TestServiceAccount:
    """Tests for ServiceAccount.from_file."""

    def test_from_file(self, tmp_path, account):
        """Test that a key file is loaded."""
        path = tmp_path / "account.json"
        path.write_text(
            json.dumps(
                {
                    "client_email": account.client_email,
                    "private_key": account.private_key_pem,
                    "project_id": "kds-project",
                }
            ),
            encoding="utf-8",
        )

        loaded = ServiceAccount.from_file(path)

        assert loaded.client_email == account.client_email
        assert loaded.project_id == "kds-project"
        assert loaded.token_uri == "https://oauth2.googleapis.com/token"

    def test_missing_file(self, tmp_path):
        """Test that an unreadable file raises CredentialsError."""
        with pytest.raises(CredentialsError):
            ServiceAccount.from_file(tmp_path / "missing.json")

    def test_incomplete_file(self, tmp_path):
        """Test that a key file without a private key is rejected."""
        path = tmp_path / "account.json"
        path.write_text('{"client_email": "a@b"}', encoding="utf-8")

        with pytest.raises(CredentialsError):
            ServiceAccount.from_file(path)


class TestCreateAssertion:
    """Tests for create_assertion."""

    def test_claims(self, account):
        """Test header and claim contents."""
        header, claims, _ = create_assertion(account, issued_at=1000).split(".")

        assert decode_part(header) == {"alg": "RS256", "typ": "JWT"}
        assert decode_part(claims) == {
            "iss": account.client_email,
            "scope": "https://www.googleapis.com/auth/firebase.messaging",
            "aud": "https://oauth2.googleapis.com/token",
            "iat": 1000,
            "exp": 4600,
        }

    def test_signature_verifies(self, account, private_key):
        """Test that the signature verifies with the account's public key."""
        assertion = create_assertion(account, issued_at=1000)
        signing_input, signature = assertion.rsplit(".", 1)
        raw_signature = base64.urlsafe_b64decode(signature + "=" * (-len(signature) % 4))

        private_key.public_key().verify(
            raw_signature, signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256()
        )

        with pytest.raises(InvalidSignature):
            private_key.public_key().verify(
                raw_signature, b"tampered", padding.PKCS1v15(), hashes.SHA256()
            )

    def test_invalid_key(self):
        """Test that a malformed key raises CredentialsError."""
        account = ServiceAccount(client_email="a@b", private_key_pem="not a key")
        with pytest.raises(CredentialsError):
            create_assertion(account, issued_at=0)


class TestTokenManager:
    """Tests for TokenManager."""

    def test_exchange_posts_assertion(self, account):
        """Test the token endpoint request."""
        session = make_session(token_response())
        manager = TokenManager(account, session=session, clock=FakeClock())

        assert manager.get_token() == "tok-1"

        url = session.post.call_args.args[0]
        data = session.post.call_args.kwargs["data"]
        assert url == account.token_uri
        assert data["grant_type"] == "urn:ietf:params:oauth:grant-type:jwt-bearer"
        assert data["assertion"].count(".") == 2

    def test_token_cached_until_early_expiry(self, account):
        """Test that tokens are reused until ten minutes before expiry."""
        clock = FakeClock()
        session = make_session(token_response("tok-1"), token_response("tok-2"))
        manager = TokenManager(account, session=session, clock=clock)

        assert manager.get_token() == "tok-1"
        clock.now += 2999
        assert manager.get_token() == "tok-1"
        clock.now += 1
        assert manager.get_token() == "tok-2"
        assert session.post.call_count == 2

    def test_invalidate_forces_exchange(self, account):
        """Test that an invalidated token is never reused."""
        session = make_session(token_response("tok-1"), token_response("tok-2"))
        manager = TokenManager(account, session=session, clock=FakeClock())

        manager.get_token()
        manager.invalidate()

        assert manager.cached is None
        assert manager.get_token() == "tok-2"

    def test_rejected_exchange_raises(self, account):
        """Test that a non-200 token response raises AuthError."""
        session = make_session(token_response(status_code=400))
        manager = TokenManager(account, session=session, clock=FakeClock())

        with pytest.raises(AuthError) as exc_info:
            manager.get_token()

        assert exc_info.value.status_code == 400
        assert manager.cached is None

    def test_transport_failure_raises(self, account):
        """Test that a network failure raises AuthError."""
        session = Mock()
        session.headers = {}
        session.post.side_effect = requests.exceptions.ConnectionError("offline")
        manager = TokenManager(account, session=session, clock=FakeClock())

        with pytest.raises(AuthError):
            manager.get_token()

    def test_malformed_response_raises(self, account):
        """Test that a response without access_token raises AuthError."""
        response = Mock(status_code=200)
        response.json.return_value = {"token_type": "Bearer"}
        manager = TokenManager(account, session=make_session(response), clock=FakeClock())

        with pytest.raises(AuthError):
            manager.get_token()


class TestRemoteCredentialsLoader:
    """Tests for RemoteCredentialsLoader."""

    def make_loader(self, *results, url="https://config.example.com/kds.json"):
        session = Mock()
        session.headers = {}
        session.get.side_effect = list(results)
        return RemoteCredentialsLoader(url, session=session), session

    def config_response(self, payload):
        response = Mock(status_code=200)
        response.json.return_value = payload
        return response

    def test_loads_once(self):
        """Test that the config document is fetched lazily and only once."""
        loader, session = self.make_loader(self.config_response({"gist_id": "g1", "github_token": "t1"}))

        session.get.assert_not_called()
        first = loader.get()
        second = loader.get()

        assert first.secondary_store_id == "g1"
        assert first.secondary_store_token == "t1"
        assert second is first
        assert session.get.call_count == 1

    def test_incomplete_config_disables_channel(self):
        """Test that a config lacking the token disables the channel for good."""
        loader, session = self.make_loader(self.config_response({"gist_id": "g1"}))

        assert loader.get() is None
        assert loader.get() is None
        assert session.get.call_count == 1

    def test_invalid_json_disables_channel(self):
        """Test that an unparseable config disables the channel."""
        response = Mock(status_code=200)
        response.json.side_effect = ValueError("bad json")
        loader, session = self.make_loader(response)

        assert loader.get() is None
        assert loader.get() is None
        assert session.get.call_count == 1

    def test_network_failure_retried(self):
        """Test that a transport failure is retried on the next call."""
        loader, session = self.make_loader(
            requests.exceptions.ConnectionError("offline"),
            self.config_response({"gist_id": "g1", "github_token": "t1"}),
        )

        assert loader.get() is None
        assert loader.get().secondary_store_id == "g1"
        assert session.get.call_count == 2

    def test_unconfigured_url(self):
        """Test that an empty config URL disables the channel without a request."""
        loader, session = self.make_loader(url="")

        assert loader.get() is None
        session.get.assert_not_called()
