"""Tests for the registry client with a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from imagebump.exit_codes import AuthError, NetworkError, NotFoundError
from imagebump.infra.registry_client import RegistryClient, parse_challenge, split_repository


def response(status_code, headers=None, json_data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.headers = headers or {}
    resp.json.return_value = json_data or {}
    return resp


def client_with(*responses, **kwargs):
    session = MagicMock()
    session.request.side_effect = list(responses)
    sleeps = []
    client = RegistryClient(session=session, sleep=sleeps.append, **kwargs)
    return client, session, sleeps


class TestSplitRepository:
    """Tests for split_repository."""

    @pytest.mark.parametrize("repository,base_url,name", [
        ("nginx", "https://registry-1.docker.io", "library/nginx"),
        ("acme/app", "https://registry-1.docker.io", "acme/app"),
        ("docker.io/acme/app", "https://registry-1.docker.io", "acme/app"),
        ("ghcr.io/acme/app", "https://ghcr.io", "acme/app"),
        ("registry.local:5000/team/app", "https://registry.local:5000", "team/app"),
        ("localhost:5000/app", "http://localhost:5000", "app"),
        ("localhost/app", "http://localhost", "app"),
    ])
    def test_split(self, repository, base_url, name):
        target = split_repository(repository)
        assert target.base_url == base_url
        assert target.name == name

    def test_configured_base_url(self):
        target = split_repository("ghcr.io/acme/app", "https://mirror.example.com/")
        assert target.base_url == "https://mirror.example.com"
        assert target.name == "acme/app"


def test_parse_challenge():
    scheme, params = parse_challenge(
        'Bearer realm="https://auth.example.com/token",service="registry.example.com",scope="repository:acme/app:pull"'
    )
    assert scheme == "bearer"
    assert params == {
        "realm": "https://auth.example.com/token",
        "service": "registry.example.com",
        "scope": "repository:acme/app:pull",
    }


class TestTagExists:
    """Tests for RegistryClient.tag_exists."""

    def test_found(self):
        client, session, _ = client_with(response(200))
        assert client.tag_exists("ghcr.io/acme/app", "v2")
        method, url = session.request.call_args.args
        assert method == "HEAD"
        assert url == "https://ghcr.io/v2/acme/app/manifests/v2"

    def test_missing(self):
        client, _, _ = client_with(response(404))
        assert not client.tag_exists("ghcr.io/acme/app", "v2")

    def test_bearer_challenge(self):
        challenge = 'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:acme/app:pull"'
        client, session, _ = client_with(
            response(401, headers={"WWW-Authenticate": challenge}),
            response(200, json_data={"token": "abc"}),
            response(200),
        )

        assert client.tag_exists("ghcr.io/acme/app", "v2")

        token_call = session.request.call_args_list[1]
        assert token_call.args == ("GET", "https://ghcr.io/token")
        assert token_call.kwargs["params"] == {"service": "ghcr.io", "scope": "repository:acme/app:pull"}
        retry = session.request.call_args_list[2]
        assert retry.kwargs["headers"]["Authorization"] == "Bearer abc"

    def test_basic_challenge_uses_credentials(self):
        client, session, _ = client_with(
            response(401, headers={"WWW-Authenticate": 'Basic realm="registry"'}),
            response(200),
            username="deploy",
            token="secret",
        )
        assert client.tag_exists("registry.local:5000/team/app", "v2")
        assert session.request.call_args.kwargs["auth"] == ("deploy", "secret")

    def test_rejected_token_request(self):
        challenge = 'Bearer realm="https://ghcr.io/token",service="ghcr.io"'
        client, _, _ = client_with(
            response(401, headers={"WWW-Authenticate": challenge}),
            response(403),
        )
        with pytest.raises(AuthError):
            client.tag_exists("ghcr.io/acme/app", "v2")

    def test_forbidden(self):
        client, _, _ = client_with(response(403))
        with pytest.raises(AuthError):
            client.tag_exists("ghcr.io/acme/app", "v2")

    def test_server_error(self):
        client, _, _ = client_with(response(503))
        with pytest.raises(NetworkError):
            client.tag_exists("ghcr.io/acme/app", "v2")

    def test_transport_failure_is_retried(self):
        client, session, sleeps = client_with(
            requests.ConnectionError("reset"),
            response(200),
            base_delay=0.5,
        )
        assert client.tag_exists("ghcr.io/acme/app", "v2")
        assert session.request.call_count == 2
        assert sleeps == [0.5]

    def test_unreachable(self):
        client, session, sleeps = client_with(
            *[requests.Timeout("slow")] * 3,
            max_retries=3,
            base_delay=1.0,
        )
        with pytest.raises(NetworkError):
            client.tag_exists("ghcr.io/acme/app", "v2")
        assert session.request.call_count == 3
        assert sleeps == [1.0, 2.0]


class TestVerify:
    """Tests for RegistryClient.verify."""

    def test_existing_tag(self):
        client, _, _ = client_with(response(200))
        client.verify("ghcr.io/acme/app", "v2")

    def test_missing_tag(self):
        client, _, _ = client_with(response(404))
        with pytest.raises(NotFoundError) as exc_info:
            client.verify("ghcr.io/acme/app", "v2")
        assert exc_info.value.repository == "ghcr.io/acme/app"
        assert exc_info.value.tag == "v2"
        assert exc_info.value.exit_code == 64
