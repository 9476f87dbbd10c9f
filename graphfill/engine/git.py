"""Finding the git repository that contains a workspace folder."""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

from graphfill.models import SimpleRepository, file_uri, uri_to_path

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 10  # seconds


async def _git(cwd: Path, *args: str) -> Optional[str]:
    """Run a git command and return its stripped stdout, or None on any failure."""
    git = shutil.which("git")
    if git is None:
        return None

    try:
        process = await asyncio.create_subprocess_exec(
            git,
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("git %s failed to start: %s", " ".join(args), e)
        return None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), GIT_TIMEOUT)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return None

    if process.returncode != 0:
        return None
    return stdout.decode("utf-8", errors="replace").strip() or None


async def infer_git_repository(folder_uri: str) -> Optional[SimpleRepository]:
    """Find the repository a folder belongs to, which may be a parent folder.

    Args:
        folder_uri: file:// URI of a workspace folder

    Returns:
        Repository root and HEAD commit, or None if the folder is not in a
        git checkout
    """
    try:
        folder = uri_to_path(folder_uri)
    except ValueError:
        return None
    if not folder.is_dir():
        return None

    toplevel = await _git(folder, "rev-parse", "--show-toplevel")
    if toplevel is None:
        return None

    commit = await _git(folder, "rev-parse", "HEAD")
    return SimpleRepository(uri=file_uri(toplevel), commit=commit)
