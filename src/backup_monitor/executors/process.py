import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional

from backup_monitor.domain.run import ProcessResult
from backup_monitor.executors.protocol import ScriptRunner

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_LIMIT = 64 * 1024
DEFAULT_SHELL = "/bin/sh"
TRUNCATION_MARKER = "\n[output truncated]"


def write_script(script: str) -> Path:
    """
    Write a script body to a private temporary file the owner may execute.
    """
    fd, name = tempfile.mkstemp(prefix="backup-monitor-", suffix=".script")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(script)
        os.chmod(name, 0o700)
    except BaseException:
        os.unlink(name)
        raise
    return Path(name)


def read_bounded(f: BinaryIO, limit: int) -> str:
    """
    Read a captured output file from the start, keeping at most ``limit`` bytes.
    """
    f.seek(0)
    data = f.read(limit + 1)
    text = data[:limit].decode("utf-8", errors="replace")
    if len(data) > limit:
        text += TRUNCATION_MARKER
    return text


class ProcessRunner(ScriptRunner):
    """
    Runs scripts as child processes using asyncio subprocesses.

    Scripts starting with a shebang are executed directly, everything else is
    handed to ``/bin/sh``. The run completes when the script exits, even if
    processes it started in the background live on. No timeout is imposed and
    scripts are never killed.
    """

    def __init__(
        self,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        shell: str = DEFAULT_SHELL,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.output_limit: int = output_limit
        self.shell: str = shell
        self.cwd: Optional[Path] = cwd
        self.env: Optional[Dict[str, str]] = env

    def launch(self, script: str, on_complete: Callable[[ProcessResult], None]) -> asyncio.Task:
        started_at = datetime.now(timezone.utc)
        task = asyncio.create_task(self.run(script))

        def _handle_completion(future: asyncio.Future):
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                logger.error("script runner crashed: %s", error, exc_info=error)
                result = ProcessResult(
                    exit_status=None,
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                    error=str(error),
                )
            else:
                result = future.result()
            on_complete(result)

        task.add_done_callback(_handle_completion)
        return task

    async def run(self, script: str) -> ProcessResult:
        started_at = datetime.now(timezone.utc)

        try:
            path = write_script(script)
        except OSError as e:
            return ProcessResult(
                exit_status=None,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                error=f"Cannot write script: {e}",
            )

        # output goes to files, not pipes, so daemons started by the script
        # (FUSE mounts, `cmd &`) cannot delay the completion
        try:
            with tempfile.TemporaryFile(prefix="backup-monitor-", suffix=".out") as stdout_file, \
                    tempfile.TemporaryFile(prefix="backup-monitor-", suffix=".err") as stderr_file:
                argv = [str(path)] if script.startswith("#!") else [self.shell, str(path)]
                try:
                    process = await asyncio.create_subprocess_exec(
                        *argv,
                        stdin=asyncio.subprocess.DEVNULL,
                        stdout=stdout_file,
                        stderr=stderr_file,
                        cwd=self.cwd,
                        env=self.env,
                    )
                except OSError as e:
                    return ProcessResult(
                        exit_status=None,
                        started_at=started_at,
                        finished_at=datetime.now(timezone.utc),
                        error=str(e),
                    )

                logger.debug("started process %d", process.pid)
                exit_status = await process.wait()
                finished_at = datetime.now(timezone.utc)
                logger.debug("process %d exited with %d", process.pid, exit_status)

                return ProcessResult(
                    exit_status=exit_status,
                    stdout=read_bounded(stdout_file, self.output_limit),
                    stderr=read_bounded(stderr_file, self.output_limit),
                    started_at=started_at,
                    finished_at=finished_at,
                )
        except OSError as e:
            return ProcessResult(
                exit_status=None,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                error=f"Cannot capture output: {e}",
            )
        finally:
            try:
                path.unlink()
            except OSError:
                logger.debug("could not remove %s", path)
