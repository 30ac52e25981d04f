"""
Job runner for external commands.

A job is started as a child process that receives one event record as
JSON on its standard input. The runner does not wait for the process and
never looks at its output or exit status.
"""

import contextlib
import subprocess
import threading
from typing import Any, Optional

from s3_watcher.core.exceptions import SpawnError
from s3_watcher.models.event import CanonicalEventRecord
from s3_watcher.models.job import JobSpec
from s3_watcher.utils.logging import get_component_logger

# an empty pipe accepts at least one page without blocking on Linux and macOS
INLINE_WRITE_LIMIT = 4096


class JobRunner:
    """Spawns job processes and hands them an event record."""

    def __init__(self, logger: Optional[Any] = None) -> None:
        """
        Initialize the job runner.

        Args:
            logger: Logger to use (defaults to one tagged ``JobRunner``)
        """
        self._logger = logger or get_component_logger("JobRunner")

    def run(self, job: JobSpec, record: CanonicalEventRecord) -> bool:
        """
        Start a job for an event record.

        Records that fit the pipe buffer are written before returning.
        Larger ones are written by a background thread, so a job that does
        not read its input cannot block the caller; failures of that write
        are only logged.

        Args:
            job: The matched job
            record: The event record to deliver

        Returns:
            Whether the process was started and, for inline writes,
            received the record
        """
        logger = self._logger.bind(operation="run", command=job.command)
        logger.info("Running a job", event_name=record.event_name, bucket=record.bucket, key=record.object_key)

        try:
            self._spawn(job.command, record.to_json().encode("utf-8"))
        except SpawnError as e:
            logger.error("Failed to run a job", error=str(e))
            return False

        return True

    def _spawn(self, command: str, payload: bytes) -> subprocess.Popen:
        """
        Start ``command`` and write ``payload`` followed by end-of-file.

        Raises:
            SpawnError: If the process cannot be started or written to
        """
        try:
            process = subprocess.Popen(
                [command],
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(f"failed to start a job: {e}") from e

        if len(payload) > INLINE_WRITE_LIMIT:
            feeder = threading.Thread(
                target=self._feed,
                args=(process, payload, command),
                name=f"job-stdin-{process.pid}",
                daemon=True,
            )
            feeder.start()
            return process

        try:
            _write_and_close(process, payload)
        except OSError as e:
            raise SpawnError(f"failed to send via STDIN: {e}") from e

        return process

    def _feed(self, process: subprocess.Popen, payload: bytes, command: str) -> None:
        try:
            _write_and_close(process, payload)
        except OSError as e:
            self._logger.error("Failed to run a job", operation="feed", command=command,
                               error=f"failed to send via STDIN: {e}")


def _write_and_close(process: subprocess.Popen, payload: bytes) -> None:
    try:
        process.stdin.write(payload)
        process.stdin.close()
    except OSError:
        # the child may have exited already; the pipe is unusable either way
        with contextlib.suppress(OSError):
            process.stdin.close()
        raise
