from __future__ import annotations

import json
import logging
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import RemoteLookupError
from action_pinner.domain.ports import RefKind, RefLookupPort, RepositoryProviderPort


_REF_NAMESPACES: dict[str, str] = {"tag": "tags", "branch": "heads"}
_MAX_TAG_DEREFERENCES = 5


class GitHubRefLookupAdapter(RefLookupPort):
    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        token: str | None = None,
        timeout_seconds: float = 30.0,
        urlopen_fn: Callable[..., Any] = urlopen,
    ) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._urlopen_fn = urlopen_fn
        self._logger = logging.getLogger(__name__)

    def lookup_ref(self, identity: ActionIdentity, ref_name: str, kind: RefKind) -> str | None:
        namespace = _REF_NAMESPACES[kind]
        repository = identity.repository
        url = f"{self._api_base_url}/repos/{repository}/git/ref/{namespace}/{quote(ref_name, safe='/')}"

        payload = self._request_json(url)
        if payload is None:
            return None

        target = payload.get("object")
        if not isinstance(target, dict):
            raise RemoteLookupError(f"Unexpected GitHub API payload: missing 'object' for URL: {url}")

        # Annotated tags point at a tag object; follow it to the commit.
        for _ in range(_MAX_TAG_DEREFERENCES):
            sha = target.get("sha")
            if not isinstance(sha, str) or not sha:
                raise RemoteLookupError(f"Unexpected GitHub API payload: missing 'sha' for URL: {url}")
            if target.get("type") != "tag":
                return sha

            tag_url = f"{self._api_base_url}/repos/{repository}/git/tags/{sha}"
            tag_payload = self._request_json(tag_url)
            if tag_payload is None or not isinstance(tag_payload.get("object"), dict):
                raise RemoteLookupError(f"Cannot dereference annotated tag object {sha} for {identity}@{ref_name}")
            target = tag_payload["object"]

        raise RemoteLookupError(f"Too many nested tag objects for {identity}@{ref_name}")

    def _request_json(self, url: str) -> dict[str, Any] | None:
        request = Request(url, headers=self._build_headers())
        try:
            with self._urlopen_fn(request, timeout=self._timeout_seconds) as response:
                content = response.read()
        except HTTPError as error:
            if error.code == 404:
                self._logger.debug(
                    "ref not found via GitHub API",
                    extra={"event": "github.ref.not_found", "url": url},
                )
                return None
            raise RemoteLookupError(
                f"GitHub API request failed with HTTP {error.code} for URL: {url}"
            ) from error
        except URLError as error:
            raise RemoteLookupError(f"GitHub API request failed for URL: {url}: {error.reason}") from error

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as error:
            raise RemoteLookupError(f"Invalid JSON received from GitHub API for URL: {url}") from error

        # A prefix-only match on the refs endpoint comes back as a list.
        if not isinstance(parsed, dict):
            return None

        return parsed

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers


class GitHubRepositoryProviderAdapter(RepositoryProviderPort):
    """List repositories owned by an organization or user."""

    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        token: str | None = None,
        timeout_seconds: float = 30.0,
        page_size: int = 100,
        urlopen_fn: Callable[..., Any] = urlopen,
    ) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._page_size = page_size
        self._urlopen_fn = urlopen_fn

    def list_repositories(self, owner: str) -> list[str]:
        encoded_owner = quote(owner, safe="")
        repositories: list[str] = []
        page = 1

        while True:
            url = f"{self._api_base_url}/users/{encoded_owner}/repos?per_page={self._page_size}&page={page}"
            items = self._request_list(url)
            for item in items:
                if not isinstance(item, dict):
                    continue
                full_name = item.get("full_name")
                if isinstance(full_name, str) and "/" in full_name and not item.get("archived", False):
                    repositories.append(full_name)
            if len(items) < self._page_size:
                return repositories
            page += 1

    def _request_list(self, url: str) -> list[Any]:
        headers = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        request = Request(url, headers=headers)
        try:
            with self._urlopen_fn(request, timeout=self._timeout_seconds) as response:
                content = response.read()
        except HTTPError as error:
            raise RemoteLookupError(
                f"GitHub API request failed with HTTP {error.code} for URL: {url}"
            ) from error
        except URLError as error:
            raise RemoteLookupError(f"GitHub API request failed for URL: {url}: {error.reason}") from error

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as error:
            raise RemoteLookupError(f"Invalid JSON received from GitHub API for URL: {url}") from error

        if not isinstance(parsed, list):
            raise RemoteLookupError("Unexpected GitHub API payload: repository listing must be a JSON array")
        return parsed
