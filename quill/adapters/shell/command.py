"""
Script runner — execute one lifecycle script as a child process.

The script runs in the installed system's directory with the merged
configuration in its environment. stdout and stderr are read line by
line on two threads and handed to ``on_line`` as they arrive. There is
no timeout: the script's own exit is awaited.

Like every adapter, the runner never raises for script failures; the
outcome is captured in the returned Receipt.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Callable

from quill.core.models.action import Receipt

logger = logging.getLogger(__name__)

LineCallback = Callable[[str, str], None]  # (stream, line)


class ScriptRunner:
    """Spawn lifecycle scripts and stream their output."""

    name = "shell"

    def __init__(self, shell: str = "/bin/sh") -> None:
        self.shell = shell

    def is_available(self) -> bool:
        return shutil.which(self.shell) is not None or Path(self.shell).is_file()

    def command(self, script: Path) -> list[str]:
        """Executable scripts run directly; others through the shell."""
        if os.access(script, os.X_OK):
            return [str(script)]
        return [self.shell, str(script)]

    def run(
        self,
        system: str,
        script: Path,
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        on_line: LineCallback | None = None,
    ) -> Receipt:
        argv = self.command(script)
        full_env = {**os.environ, **(env or {})}
        logger.debug("Executing %s for %s (cwd=%s)", " ".join(argv), system, cwd)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            return Receipt.failure(
                system, script.name,
                error=f"Cannot spawn {script.name}: {e}",
                duration_ms=_ms(start),
            )

        readers = [
            threading.Thread(target=_pump, args=(proc.stdout, "stdout", on_line), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, "stderr", on_line), daemon=True),
        ]
        for reader in readers:
            reader.start()
        code = proc.wait()
        for reader in readers:
            reader.join()

        elapsed_ms = _ms(start)
        if code == 0:
            return Receipt.success(system, script.name, duration_ms=elapsed_ms)
        return Receipt.failure(
            system, script.name,
            error=f"{script.name} exited with code {code}",
            exit_code=code,
            duration_ms=elapsed_ms,
        )


def _pump(stream: IO[str], name: str, on_line: LineCallback | None) -> None:
    with stream:
        for line in stream:
            if on_line:
                on_line(name, line.rstrip("\n"))


def _ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
