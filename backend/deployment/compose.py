"""
docker compose runner.

Drives the compose CLI for the updater's own compose file.
Commands run via subprocess in a worker thread so the event loop stays free.
"""

import asyncio
import logging
import os
import shutil
import subprocess
from typing import List, Optional

from exceptions import ComposeCommandError

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_TIMEOUT = 600


def compose_command() -> List[str]:
    """`docker compose` (v2 plugin), or the standalone docker-compose binary"""
    if shutil.which('docker'):
        return ['docker', 'compose']
    if shutil.which('docker-compose'):
        return ['docker-compose']
    return ['docker', 'compose']


class ComposeRunner:
    """
    Args:
        compose_file: path of the compose file
        timeout: seconds allowed per command
    """

    def __init__(self, compose_file: str, timeout: int = DEFAULT_COMPOSE_TIMEOUT):
        self.compose_file = compose_file
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return bool(self.compose_file) and os.path.isfile(self.compose_file)

    async def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        command = compose_command() + ['-f', self.compose_file] + args
        cwd = os.path.dirname(os.path.abspath(self.compose_file))
        logger.info(f"Running: {' '.join(command)}")
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError as e:
            raise ComposeCommandError(command, 127, str(e))
        except subprocess.TimeoutExpired:
            raise ComposeCommandError(command, -1, f"timed out after {self.timeout}s")

        if result.returncode != 0:
            raise ComposeCommandError(command, result.returncode, result.stderr or '')
        return result

    async def up(self, service: Optional[str] = None, remove_orphans: bool = False) -> None:
        args = ['up', '-d']
        if remove_orphans:
            args.append('--remove-orphans')
        if service:
            args.append(service)
        await self._run(args)

    async def down(self) -> None:
        await self._run(['down'])
