"""Spawning the graph-context engine process."""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from graphfill.constants import ENGINE_ARGS, ENGINE_ENV_KEEP
from graphfill.engine.jsonrpc import MessageHandler
from graphfill.errors import StartupFailure

logger = logging.getLogger(__name__)


def prepare_env(verbose: bool = False) -> dict[str, str]:
    """Prepare a minimal environment for the engine process.

    Args:
        verbose: Ask the engine for verbose debug output on stderr

    Returns:
        Dictionary of environment variables
    """
    env = {var: os.environ[var] for var in ENGINE_ENV_KEEP if var in os.environ}

    if verbose:
        env["VERBOSE_DEBUG"] = "true"
        env["RUST_BACKTRACE"] = "full"

    return env


def resolve_engine_path(engine_path: str) -> str:
    """Resolve the engine binary, looking it up on PATH when it has no directory part.

    Raises:
        StartupFailure: If the binary cannot be found
    """
    if os.sep in engine_path:
        path = Path(engine_path).expanduser()
        if not path.is_file():
            raise StartupFailure(f"engine binary not found: {engine_path}")
        return str(path)

    found = shutil.which(engine_path)
    if found is None:
        raise StartupFailure(f"engine binary not on PATH: {engine_path}")
    return found


async def spawn_engine(
    engine_path: str,
    args: Optional[list[str]] = None,
    cwd: Optional[Path] = None,
    verbose: bool = False,
) -> MessageHandler:
    """Start the engine and attach a JSON-RPC handler to its stdio.

    Args:
        engine_path: Engine binary (path or name on PATH)
        args: Command line arguments, defaults to the stdio JSON-RPC mode
        cwd: Working directory for the process
        verbose: Enable verbose engine logging

    Returns:
        Started MessageHandler

    Raises:
        StartupFailure: If the process cannot be started
    """
    binary = resolve_engine_path(engine_path)
    argv = [binary, *(ENGINE_ARGS if args is None else args)]
    logger.debug("spawning engine: %s", " ".join(argv))

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=prepare_env(verbose),
        )
    except OSError as e:
        raise StartupFailure(f"could not start {binary}: {e}") from e

    handler = MessageHandler(process)
    handler.start()
    return handler
