from __future__ import annotations

import io
import json
from urllib.error import HTTPError, URLError

import pytest
from conftest import sha

from action_pinner.adapters.git_providers.github_api import (
    GitHubRefLookupAdapter,
    GitHubRepositoryProviderAdapter,
)
from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import RemoteLookupError


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


class FakeUrlopen:
    """Serve canned responses by URL; unknown URLs answer 404."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request, timeout):
        self.requests.append(request)
        outcome = self.routes.get(request.full_url)
        if outcome is None:
            raise HTTPError(request.full_url, 404, "Not Found", hdrs=None, fp=None)
        if isinstance(outcome, Exception):
            raise outcome
        body = outcome if isinstance(outcome, bytes) else json.dumps(outcome).encode("utf-8")
        return _Response(body)


API = "https://api.example.test"


def _adapter(routes, **kwargs):
    fake = FakeUrlopen(routes)
    return GitHubRefLookupAdapter(api_base_url=API, urlopen_fn=fake, **kwargs), fake


def test_lightweight_tag_returns_commit():
    adapter, fake = _adapter(
        {f"{API}/repos/actions/checkout/git/ref/tags/v4": {"object": {"sha": sha("a"), "type": "commit"}}},
        token="secret",
    )

    assert adapter.lookup_ref(ActionIdentity.parse("actions/checkout"), "v4", "tag") == sha("a")
    assert fake.requests[0].get_header("Authorization") == "Bearer secret"
    assert fake.requests[0].get_header("Accept") == "application/vnd.github+json"


def test_annotated_tag_is_dereferenced():
    adapter, _ = _adapter(
        {
            f"{API}/repos/org/tool/git/ref/tags/v1": {"object": {"sha": sha("1"), "type": "tag"}},
            f"{API}/repos/org/tool/git/tags/{sha('1')}": {"object": {"sha": sha("2"), "type": "commit"}},
        }
    )

    assert adapter.lookup_ref(ActionIdentity.parse("org/tool"), "v1", "tag") == sha("2")


def test_branch_lookup_uses_heads_namespace_of_repository():
    adapter, fake = _adapter(
        {f"{API}/repos/github/codeql-action/git/ref/heads/feature/x": {"object": {"sha": sha("3"), "type": "commit"}}}
    )

    result = adapter.lookup_ref(ActionIdentity.parse("github/codeql-action/init"), "feature/x", "branch")

    assert result == sha("3")
    assert fake.requests[0].get_header("Authorization") is None


def test_missing_ref_returns_none():
    adapter, _ = _adapter({})

    assert adapter.lookup_ref(ActionIdentity.parse("org/tool"), "v9", "tag") is None


def test_prefix_listing_payload_is_not_a_match():
    adapter, _ = _adapter({f"{API}/repos/org/tool/git/ref/tags/v1": [{"ref": "refs/tags/v1.0.0"}]})

    assert adapter.lookup_ref(ActionIdentity.parse("org/tool"), "v1", "tag") is None


@pytest.mark.parametrize(
    "failure",
    [
        HTTPError("u", 500, "Server Error", hdrs=None, fp=None),
        HTTPError("u", 403, "rate limited", hdrs=None, fp=None),
        URLError("connection refused"),
        b"not json",
    ],
)
def test_transport_failures_raise_remote_lookup_error(failure):
    adapter, _ = _adapter({f"{API}/repos/org/tool/git/ref/tags/v1": failure})

    with pytest.raises(RemoteLookupError):
        adapter.lookup_ref(ActionIdentity.parse("org/tool"), "v1", "tag")


def test_repository_listing_pages_and_skips_archived():
    page_one = [
        {"full_name": "acme/one", "archived": False},
        {"full_name": "acme/old", "archived": True},
    ]
    page_two = [{"full_name": "acme/three"}]
    fake = FakeUrlopen(
        {
            f"{API}/users/acme/repos?per_page=2&page=1": page_one,
            f"{API}/users/acme/repos?per_page=2&page=2": page_two,
        }
    )
    provider = GitHubRepositoryProviderAdapter(api_base_url=API, page_size=2, urlopen_fn=fake)

    assert provider.list_repositories("acme") == ["acme/one", "acme/three"]
    assert len(fake.requests) == 2


def test_repository_listing_requires_array_payload():
    fake = FakeUrlopen({f"{API}/users/acme/repos?per_page=100&page=1": {"message": "nope"}})
    provider = GitHubRepositoryProviderAdapter(api_base_url=API, urlopen_fn=fake)

    with pytest.raises(RemoteLookupError):
        provider.list_repositories("acme")
