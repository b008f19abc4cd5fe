"""Allocator registry: the version-controlled store of allocator JSON files.

The real registry is a GitHub repository updated through pull requests.
The adapters here keep the same contract locally: every ``publish`` is one
change with a branch name, a commit sha and a change number.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from datacap_pipeline.core.config import AllocatorRegistryConfig
from datacap_pipeline.core.errors import AllocatorNotFoundError
from datacap_pipeline.core.ids import payload_hash
from datacap_pipeline.domain.documents import AllocatorFile, PublishedChange

logger = logging.getLogger(__name__)


class IAllocatorRegistry(Protocol):
    async def fetch_allocator(self, json_hash: str) -> AllocatorFile: ...

    async def publish(
        self,
        json_hash: str,
        allocator: AllocatorFile,
        branch_name: str,
        title: str,
    ) -> PublishedChange: ...


class InMemoryAllocatorRegistry:
    """Dict-backed registry for tests and local development."""

    def __init__(self, base_url: str = "https://registry.local/pull") -> None:
        self._files: dict[str, AllocatorFile] = {}
        self._changes: list[PublishedChange] = []
        self._base_url = base_url

    def put(self, json_hash: str, allocator: AllocatorFile) -> None:
        """Seed a file without publishing a change."""
        self._files[json_hash] = allocator.model_copy(deep=True)

    def get(self, json_hash: str) -> AllocatorFile | None:
        found = self._files.get(json_hash)
        return found.model_copy(deep=True) if found else None

    @property
    def changes(self) -> list[PublishedChange]:
        return list(self._changes)

    async def fetch_allocator(self, json_hash: str) -> AllocatorFile:
        found = self._files.get(json_hash)
        if found is None:
            raise AllocatorNotFoundError(f"Allocator {json_hash} not found in registry")
        return found.model_copy(deep=True)

    async def publish(
        self,
        json_hash: str,
        allocator: AllocatorFile,
        branch_name: str,
        title: str,
    ) -> PublishedChange:
        self._files[json_hash] = allocator.model_copy(deep=True)
        number = len(self._changes) + 1
        change = PublishedChange(
            branch_name=branch_name,
            commit_sha=payload_hash(allocator.model_dump(mode="json"), length=40),
            pr_number=number,
            pr_url=f"{self._base_url}/{number}",
        )
        self._changes.append(change)
        logger.info("Published %s as change #%d", title, number)
        return change


class DirectoryAllocatorRegistry:
    """Registry checkout on disk: ``<root>/Allocators/<hash>.json``.

    Each publish rewrites the file and appends one line to
    ``<root>/.changes.jsonl``.
    """

    def __init__(self, config: AllocatorRegistryConfig) -> None:
        self._root = Path(config.local_path)
        self._config = config

    def _file(self, json_hash: str) -> Path:
        return self._root / "Allocators" / f"{json_hash}.json"

    def _journal(self) -> Path:
        return self._root / ".changes.jsonl"

    async def fetch_allocator(self, json_hash: str) -> AllocatorFile:
        path = self._file(json_hash)
        if not path.exists():
            raise AllocatorNotFoundError(f"Allocator {json_hash} not found in registry")
        return AllocatorFile.model_validate_json(path.read_text())

    async def publish(
        self,
        json_hash: str,
        allocator: AllocatorFile,
        branch_name: str,
        title: str,
    ) -> PublishedChange:
        document = allocator.model_dump(mode="json")
        path = self._file(json_hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2))

        journal = self._journal()
        number = 1
        if journal.exists():
            with journal.open() as f:
                number += sum(1 for line in f if line.strip())
        change = PublishedChange(
            branch_name=branch_name,
            commit_sha=payload_hash(document, length=40),
            pr_number=number,
            pr_url=(
                f"https://github.com/{self._config.owner}/{self._config.repo}"
                f"/pull/{number}"
            ),
        )
        with journal.open("a") as f:
            f.write(json.dumps({"title": title, **change.model_dump()}) + "\n")
        logger.info("Published %s to %s as change #%d", title, path, number)
        return change
