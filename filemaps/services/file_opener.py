"""Dispatch of map resources to an external application."""
from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol

from filemaps import config
from filemaps.map_store import MapStore

logger = logging.getLogger("filemaps.opener")


class FileOpener(Protocol):
    def open(self, path: Path) -> bool: ...


class CommandFileOpener:
    """Opens files by running a configured command line with the path appended.

    The command is waited on; a non-zero exit status counts as a failure.
    """

    def __init__(self, command: str | None = None):
        self.command = config.OPEN_COMMAND if command is None else command

    def open(self, path: Path) -> bool:
        if not self.command.strip():
            logger.warning("No open command configured (FILEMAPS_OPEN_COMMAND), cannot open %s", path)
            return False
        argv = shlex.split(self.command) + [str(path)]
        logger.info("Opening %s with %s", path, argv[0])
        try:
            completed = subprocess.run(argv, capture_output=True, check=False)
        except OSError as exc:
            logger.error("Could not start %s: %s", argv[0], exc)
            return False
        if completed.returncode != 0:
            logger.error(
                "%s exited with status %s: %s",
                argv[0],
                completed.returncode,
                completed.stderr.decode("utf-8", errors="replace").strip(),
            )
            return False
        return True


def open_resource(store: MapStore, resource_id: int, opener: FileOpener) -> bool | None:
    """Open a resource. Returns None when the resource does not exist."""
    store.ensure_loaded()
    path = store.resolve_path(resource_id)
    if path is None:
        return None
    return opener.open(path)
