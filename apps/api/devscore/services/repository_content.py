"""
Repository content for analysis: fetch, filter, rank and bound source files.

Only the "fetch file content for project X" capability lives here; installation
and credential handling for the source host are outside this service.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

import httpx

from devscore.core.config import settings
from devscore.core.pipeline_errors import ContentFetchError

logger = logging.getLogger(__name__)

MAX_TOTAL_CHARS = 100_000
MAX_FILE_CHARS = 8_000
MAX_FILES = 75
MAX_DEPTH = 10
MAX_FETCH_BYTES = 100_000

TRUNCATION_MARKER = "\n// ... (truncated)"

IGNORED_DIRS = {
    "node_modules", "vendor", "dist", "build", "out", "target", "bin", "obj",
    "coverage", "__pycache__", "venv", "env", "Pods", "DerivedData", "migrations",
}
IGNORED_FILES = {
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock", "Pipfile.lock",
    "composer.lock", "Gemfile.lock", "Cargo.lock", ".DS_Store",
}
IGNORED_EXTENSIONS = (
    ".min.js", ".min.css", ".map", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico",
    ".webp", ".pdf", ".zip", ".gz", ".woff", ".woff2", ".ttf", ".eot", ".mp3", ".mp4",
    ".lock", ".exe", ".dll", ".so", ".class", ".jar",
)
RELEVANT_EXTENSIONS = (
    ".py", ".js", ".jsx", ".ts", ".tsx", ".vue", ".svelte", ".java", ".kt", ".swift",
    ".go", ".rb", ".php", ".cs", ".cpp", ".c", ".h", ".rs", ".dart", ".scala",
    ".html", ".css", ".scss", ".sql", ".json", ".yml", ".yaml", ".toml", ".md", ".gradle", ".xml",
)
SPECIAL_FILE_PREFIXES = ("README", "LICENSE", "CONTRIBUTING", "CHANGELOG", "MAKEFILE", "DOCKERFILE")

ENTRY_POINTS = {
    "index.js", "index.ts", "index.jsx", "index.tsx", "main.js", "main.ts", "app.js", "app.ts",
    "server.js", "server.ts", "main.py", "app.py", "manage.py", "main.go", "main.dart",
}
MANIFESTS = {
    "readme.md", "package.json", "pyproject.toml", "requirements.txt", "pom.xml",
    "build.gradle", "go.mod", "cargo.toml", "composer.json", "gemfile", "pubspec.yaml",
}

_GITHUB_URL = re.compile(r"^https?://(www\.)?github\.com/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(\.git)?/?$")


@dataclass
class RepoFile:
    path: str
    content: str
    size: int = 0


class RepositoryContentSource(Protocol):
    async def fetch_files(self, repository_url: str) -> List[RepoFile]:
        ...

    async def list_languages(self, repository_url: str) -> List[str]:
        ...


def parse_github_url(url: str) -> Tuple[str, str]:
    match = _GITHUB_URL.match((url or "").strip())
    if not match:
        raise ValueError(f"Not a GitHub repository URL: {url}")
    return match.group("owner"), match.group("repo")


def file_priority(file_path: str) -> int:
    """Higher means more useful to a reviewer. Entry points first, tests and config last."""
    path = file_path.lower()
    file_name = path.rsplit("/", 1)[-1]

    if file_name in ENTRY_POINTS or any(p in path for p in ("src/app.", "src/main.", "src/index.")):
        return 1000
    if file_name in MANIFESTS:
        return 900

    if any(p in path for p in ("test", "spec", "__tests__")):
        return 30

    if "src/" in path:
        if any(p in path for p in ("route", "controller", "service", "api")):
            return 150
        if any(p in path for p in ("component", "page", "hook", "view")):
            return 145
        if any(p in path for p in ("model", "store", "redux", "context")):
            return 130
        return 120

    if "lib/" in path or "app/" in path:
        return 110
    if "util" in path or "helper" in path:
        return 70
    if file_name.endswith((".json", ".yml", ".yaml", ".toml")):
        return 20
    return 50


def should_ignore_dir(name: str) -> bool:
    return name in IGNORED_DIRS or name.startswith(".")


def should_ignore_file(name: str, size: int) -> bool:
    if name in IGNORED_FILES:
        return True
    lowered = name.lower()
    if lowered.endswith(IGNORED_EXTENSIONS):
        return True
    is_special = name.upper().startswith(SPECIAL_FILE_PREFIXES)
    if not lowered.endswith(RELEVANT_EXTENSIONS) and not is_special:
        return True
    return size > MAX_FETCH_BYTES


def select_files(files: List[RepoFile]) -> List[RepoFile]:
    """Rank by priority and keep what fits the per-file, total and count bounds."""
    ranked = sorted(files, key=lambda f: file_priority(f.path), reverse=True)
    selected: List[RepoFile] = []
    total = 0
    for f in ranked:
        if len(selected) >= MAX_FILES:
            break
        content = f.content
        if len(content) > MAX_FILE_CHARS:
            content = content[: MAX_FILE_CHARS - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
        if total + len(content) > MAX_TOTAL_CHARS:
            break
        selected.append(RepoFile(path=f.path, content=content, size=f.size))
        total += len(content)
    return selected


def render_code_snippets(files: List[RepoFile]) -> str:
    return "\n\n".join(f"// File: {f.path}\n{f.content}" for f in files)


def detect_fullstack_by_structure(files: List[RepoFile]) -> bool:
    paths = [f.path.lower() for f in files]
    contents = [f.content.lower() for f in files]

    def _has_dir(names: Tuple[str, ...]) -> bool:
        return any(p.startswith(f"{n}/") or f"/{n}/" in p for p in paths for n in names)

    if _has_dir(("client", "frontend")) and _has_dir(("server", "backend")):
        return True

    python_backend = any(("from flask import" in c or "from django" in c or "fastapi" in c) for c in contents)
    frontend_files = any(p.endswith((".jsx", ".tsx", ".vue")) for p in paths)
    if python_backend and frontend_files:
        return True

    node_backend = any(("express()" in c or "require('express')" in c or "import express" in c) for c in contents)
    react_or_vue = any(("from 'react'" in c or "import react" in c or "import vue" in c) for c in contents)
    return node_backend and react_or_vue


class GithubContentSource:
    """Reads repository files through the GitHub contents API."""

    def __init__(self, token: Optional[str] = None, api_url: Optional[str] = None, timeout: float = 30.0):
        self.token = token if token is not None else settings.github_token
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _walk(self, client: httpx.AsyncClient, owner: str, repo: str, path: str, depth: int, out: List[RepoFile]) -> None:
        if depth > MAX_DEPTH:
            return
        resp = await client.get(f"{self.api_url}/repos/{owner}/{repo}/contents/{path}")
        resp.raise_for_status()
        data = resp.json()
        items = data if isinstance(data, list) else [data]

        for item in items:
            item_type = item.get("type")
            name = item.get("name", "")
            if item_type == "dir":
                if should_ignore_dir(name):
                    continue
                try:
                    await self._walk(client, owner, repo, item["path"], depth + 1, out)
                except httpx.HTTPError as e:
                    logger.warning(f"Failed to fetch directory {item.get('path')}: {e}")
                continue
            if item_type != "file" or should_ignore_file(name, item.get("size") or 0):
                continue

            content = ""
            download_url = item.get("download_url")
            if download_url:
                try:
                    file_resp = await client.get(download_url)
                    if file_resp.status_code == 200:
                        content = file_resp.text
                except httpx.HTTPError as e:
                    logger.warning(f"Failed to download {item.get('path')}: {e}")
            out.append(RepoFile(path=item["path"], content=content, size=item.get("size") or 0))

    async def fetch_files(self, repository_url: str) -> List[RepoFile]:
        try:
            owner, repo = parse_github_url(repository_url)
        except ValueError as e:
            raise ContentFetchError(str(e)) from e

        files: List[RepoFile] = []
        async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers(), follow_redirects=True) as client:
            try:
                await self._walk(client, owner, repo, "", 0, files)
            except httpx.HTTPError as e:
                raise ContentFetchError(f"Failed to read repository {owner}/{repo}: {e}") from e
        return [f for f in files if f.content]

    async def list_languages(self, repository_url: str) -> List[str]:
        try:
            owner, repo = parse_github_url(repository_url)
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                resp = await client.get(f"{self.api_url}/repos/{owner}/{repo}/languages")
                resp.raise_for_status()
                return list((resp.json() or {}).keys())
        except (ValueError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch languages for {repository_url}: {e}")
            return []


_content_source: Optional[GithubContentSource] = None


def get_content_source() -> GithubContentSource:
    global _content_source
    if _content_source is None:
        _content_source = GithubContentSource()
    return _content_source
