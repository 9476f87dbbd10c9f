"""Keeps the engine's index in step with the workspace's repositories."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Optional

from graphfill.engine.client import EngineClient
from graphfill.engine.git import infer_git_repository
from graphfill.models import RepositoryRevision, SimpleRepository

logger = logging.getLogger(__name__)

RepositoryInferrer = Callable[[str], Awaitable[Optional[SimpleRepository]]]


class RevisionMap:
    """Revisions submitted for indexing, keyed by repository URI.

    Also remembers workspace folders that were indexed without a repository.
    Entries are never removed.
    """

    def __init__(self):
        self._revisions: dict[str, str] = {}
        self._workspaces: set[str] = set()

    def record_revision(self, uri: str, commit: str) -> bool:
        """Store a revision.

        Returns:
            True if the URI is new or its commit differs from the stored one
        """
        if uri in self._revisions and self._revisions[uri] == commit:
            return False
        self._revisions[uri] = commit
        return True

    def mark_workspace(self, uri: str) -> None:
        self._workspaces.add(uri)

    def has(self, uri: str) -> bool:
        return uri in self._revisions

    def is_indexed(self, uri: str) -> bool:
        """Whether any indexed URI is a prefix of uri."""
        for key in (*self._revisions, *self._workspaces):
            if uri.startswith(key):
                return True
        return False

    def revisions(self) -> list[RepositoryRevision]:
        return [RepositoryRevision(repository_uri=uri, commit=commit) for uri, commit in self._revisions.items()]

    def __len__(self) -> int:
        return len(self._revisions)


class IndexingSupervisor:
    """Tells the engine which repositories and folders to index.

    The revision map is updated before the engine is notified. If the
    notification fails the map still says "indexed"; the next commit triggers
    a new notification, nothing retries the failed one.
    """

    def __init__(
        self,
        client: EngineClient,
        infer_parent_repositories: bool = False,
        infer_repository: RepositoryInferrer = infer_git_repository,
    ):
        """Initialize supervisor.

        Args:
            client: Engine client to notify
            infer_parent_repositories: Also index git repositories found in
                parents of workspace folders
            infer_repository: Finds the repository containing a folder URI
        """
        self.client = client
        self.infer_parent_repositories = infer_parent_repositories
        self.infer_repository = infer_repository
        self.revisions = RevisionMap()
        self.workspace_folders: list[str] = []
        self._indexing: Optional[asyncio.Future] = None

    def start(
        self,
        workspace_folders: Iterable[str],
        repositories: Iterable[SimpleRepository] = (),
    ) -> asyncio.Future:
        """Kick off initial indexing in the background.

        Args:
            workspace_folders: Workspace folder URIs
            repositories: Repositories already known to the editor

        Returns:
            The initial indexing task
        """
        self.workspace_folders = list(workspace_folders)
        self._indexing = asyncio.ensure_future(self.index_workspace(list(repositories)))
        return self._indexing

    async def wait_for_indexing(self) -> None:
        """Wait for initial indexing, if it was started."""
        if self._indexing is None:
            return
        try:
            await asyncio.shield(self._indexing)
        except Exception as e:
            logger.debug("initial indexing failed: %s", e)

    async def index_workspace(self, repositories: list[SimpleRepository]) -> None:
        """Index known repositories, inferred repositories, then leftover folders."""
        for repository in repositories:
            await self.did_change_repository(repository)
        await self.index_inferred_repositories()
        await self.index_remaining_workspace_folders()

    async def did_change_repository(self, repository: SimpleRepository) -> bool:
        """Handle a repository being opened or moving to a new commit.

        Returns:
            True if the engine was asked to re-index
        """
        if not repository.commit:
            return False
        return await self._index_repository(repository)

    async def did_open_repository(self, repository: SimpleRepository) -> bool:
        """Handle a repository appearing in the workspace."""
        return await self.did_change_repository(repository)

    async def did_change_workspace_folders(self, workspace_folders: Iterable[str]) -> None:
        """Handle workspace folders being added or removed."""
        self.workspace_folders = list(workspace_folders)
        await self.index_inferred_repositories()
        await self.index_remaining_workspace_folders()

    async def index_inferred_repositories(self) -> None:
        """Index git repositories that contain workspace folders, if allowed."""
        if not self.infer_parent_repositories:
            return

        for folder in self.workspace_folders:
            if self.revisions.has(folder):
                continue
            repository = await self.infer_repository(folder)
            if repository is not None:
                await self._index_repository(repository)

    async def index_remaining_workspace_folders(self) -> None:
        """Index folders not covered by any indexed repository, once each."""
        logger.debug("workspace folders: %s", self.workspace_folders)
        for folder in self.workspace_folders:
            if self.revisions.is_indexed(folder):
                continue
            self.revisions.mark_workspace(folder)
            started = time.monotonic()
            if await self.client.notify_workspace_changed(folder):
                logger.debug("workspace %s submitted in %.0fms", folder, (time.monotonic() - started) * 1000)

    async def _index_repository(self, repository: SimpleRepository) -> bool:
        if not self.revisions.record_revision(repository.uri, repository.commit or ""):
            return False

        started = time.monotonic()
        if await self.client.notify_revision_changed(repository.uri, repository.commit):
            logger.debug(
                "repository %s:%s submitted in %.0fms",
                repository.uri,
                repository.commit,
                (time.monotonic() - started) * 1000,
            )
        return True
