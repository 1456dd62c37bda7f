"""Tests for image reference parsing."""

from pathlib import Path

import pytest

from imagebump.domain import ImageReference, UpdateRequest, is_valid_tag, is_valid_repository
from imagebump.exit_codes import InvalidRequestError

DIGEST = "sha256:" + "a" * 64


class TestImageReferenceParse:
    """Tests for ImageReference.parse."""

    def test_repository_and_tag(self):
        ref = ImageReference.parse("ghcr.io/acme/app:v1.2.3")
        assert ref.repository == "ghcr.io/acme/app"
        assert ref.tag == "v1.2.3"
        assert ref.digest is None

    def test_no_tag(self):
        ref = ImageReference.parse("nginx")
        assert ref.repository == "nginx"
        assert ref.tag is None

    def test_registry_port_is_not_a_tag(self):
        ref = ImageReference.parse("registry.local:5000/team/app")
        assert ref.repository == "registry.local:5000/team/app"
        assert ref.tag is None

    def test_registry_port_with_tag(self):
        ref = ImageReference.parse("registry.local:5000/team/app:2024.01")
        assert ref.repository == "registry.local:5000/team/app"
        assert ref.tag == "2024.01"

    def test_digest(self):
        ref = ImageReference.parse(f"ghcr.io/acme/app:v1@{DIGEST}")
        assert ref.repository == "ghcr.io/acme/app"
        assert ref.tag == "v1"
        assert ref.digest == DIGEST

    @pytest.mark.parametrize("value", [
        "",
        "   ",
        "app:",
        "app:v 1",
        "app@sha256:nothex",
        "/app:v1",
        None,
        42,
    ])
    def test_rejects_malformed(self, value):
        assert ImageReference.parse(value) is None


class TestImageReferenceBehavior:
    """Tests for matching and retagging."""

    def test_exact_match_only(self):
        ref = ImageReference.parse("app-worker:v1")
        assert ref.matches("app-worker")
        assert not ref.matches("app")

    def test_with_tag_appends_missing_tag(self):
        ref = ImageReference.parse("app")
        assert ref.with_tag("v2").to_string() == "app:v2"

    def test_with_tag_drops_digest(self):
        ref = ImageReference.parse(f"app:v1@{DIGEST}")
        assert ref.with_tag("v2").to_string() == "app:v2"

    def test_str_round_trip(self):
        value = f"registry.local:5000/app:v1@{DIGEST}"
        assert str(ImageReference.parse(value)) == value


class TestValidation:
    """Tests for tag and repository syntax checks."""

    @pytest.mark.parametrize("tag", ["v1", "1.2.3", "latest", "sha-abc123", "_build.7"])
    def test_valid_tags(self, tag):
        assert is_valid_tag(tag)

    @pytest.mark.parametrize("tag", ["", "-v1", ".v1", "v 1", "a/b", "v1\n", "x" * 129])
    def test_invalid_tags(self, tag):
        assert not is_valid_tag(tag)

    def test_repository_rules(self):
        assert is_valid_repository("ghcr.io/acme/app")
        assert not is_valid_repository("")
        assert not is_valid_repository("my app")
        assert not is_valid_repository("app/")


class TestUpdateRequest:
    """Tests for UpdateRequest.validate."""

    def test_valid(self):
        UpdateRequest((Path("app.yaml"),), "ghcr.io/acme/app", "v2").validate()

    @pytest.mark.parametrize("repository,tag,paths", [
        ("", "v2", (Path("app.yaml"),)),
        ("ghcr.io/acme/app", "", (Path("app.yaml"),)),
        ("ghcr.io/acme/app", "v2:v3", (Path("app.yaml"),)),
        ("ghcr.io/acme/app", "v2", ()),
    ])
    def test_invalid(self, repository, tag, paths):
        with pytest.raises(InvalidRequestError) as exc_info:
            UpdateRequest(paths, repository, tag).validate()
        assert exc_info.value.exit_code == 2
