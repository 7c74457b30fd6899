from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from bench_runner.errors import ReclaimError
from bench_runner.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def prune_command(settings: Settings | None = None) -> list[str]:
    settings = settings or get_settings()
    return [settings.docker_bin, "system", "prune", "-a", "-f"]


async def reclaim(output_dir: Path, settings: Settings | None = None) -> None:
    """Stop and delete all containers, images and build cache, then the job's files.

    The output directory is removed even when the prune fails. A failed
    prune raises ReclaimError.
    """
    try:
        await _prune(settings)
    finally:
        if output_dir.exists():
            await asyncio.to_thread(shutil.rmtree, output_dir)
        logger.info("removed %s", output_dir)


async def _prune(settings: Settings | None) -> None:
    cmd = prune_command(settings)
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError as exc:
        raise ReclaimError(f"failed to spawn {cmd[0]}: {exc}") from exc

    output, _ = await process.communicate()
    log = output.decode(errors="replace")
    if process.returncode != 0:
        raise ReclaimError(
            f"{' '.join(cmd)} exited with code {process.returncode}", log=log
        )
    logger.info("pruned docker resources")
