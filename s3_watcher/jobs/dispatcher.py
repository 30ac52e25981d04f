"""
Dispatcher matching event records against the job table.

A job filter has three dimensions (events, buckets, objects). Within a
dimension the patterns are OR-ed; across dimensions they are AND-ed. An
empty dimension, or one containing the ``"*"`` wildcard, matches every
value. Patterns are regular expressions searched anywhere in the value.
"""

import re
from typing import Any, Callable, List, Optional, Pattern, Sequence, Tuple

from s3_watcher.core.exceptions import JobTableError
from s3_watcher.jobs.job_table import JobTableLoader
from s3_watcher.jobs.runner import JobRunner
from s3_watcher.models.event import CanonicalEventRecord
from s3_watcher.models.job import JobFilter, JobSpec
from s3_watcher.utils.logging import get_component_logger

WILDCARD = "*"

InvalidPatternHandler = Callable[[str, re.error], None]


def _skip_invalid(pattern: str, error: re.error) -> None:
    pass


class _CompiledDimension:
    """A filter dimension with its patterns compiled for one dispatch pass."""

    def __init__(self, patterns: Sequence[str], on_invalid: InvalidPatternHandler) -> None:
        self.match_all = not patterns or WILDCARD in patterns
        self.regexes: List[Pattern[str]] = []

        if self.match_all:
            return

        for pattern in patterns:
            try:
                self.regexes.append(re.compile(pattern))
            except re.error as e:
                on_invalid(pattern, e)

    def passes(self, value: str) -> bool:
        return self.match_all or any(regex.search(value) for regex in self.regexes)


class _CompiledFilter:
    def __init__(self, job_filter: JobFilter, on_invalid: InvalidPatternHandler) -> None:
        self.events = _CompiledDimension(job_filter.events, on_invalid)
        self.buckets = _CompiledDimension(job_filter.buckets, on_invalid)
        self.objects = _CompiledDimension(job_filter.objects, on_invalid)

    def matches(self, record: CanonicalEventRecord) -> bool:
        return (
            self.events.passes(record.event_name)
            and self.buckets.passes(record.bucket)
            and self.objects.passes(record.object_key)
        )


def passes(
        patterns: Sequence[str],
        value: str,
        on_invalid: InvalidPatternHandler = _skip_invalid,
) -> bool:
    """
    Check a value against one filter dimension.

    Args:
        patterns: Patterns of the dimension
        value: Field of the event record being tested
        on_invalid: Called with each pattern that is not a valid regular
            expression; such patterns never match

    Returns:
        Whether the dimension accepts the value
    """
    return _CompiledDimension(patterns, on_invalid).passes(value)


def job_matches(
        job: JobSpec,
        record: CanonicalEventRecord,
        on_invalid: InvalidPatternHandler = _skip_invalid,
) -> bool:
    """Check whether a job's filter selects an event record."""
    return _CompiledFilter(job.filter, on_invalid).matches(record)


class Dispatcher:
    """Selects the jobs matching each event record and starts them."""

    def __init__(
            self,
            loader: JobTableLoader,
            runner: JobRunner,
            logger: Optional[Any] = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            loader: Loader for the job table, read on every pass
            runner: Runner used to start matched jobs
            logger: Logger to use (defaults to one tagged ``Dispatcher``)
        """
        self.loader = loader
        self.runner = runner
        self._logger = logger or get_component_logger("Dispatcher")

    def dispatch(self, records: Sequence[CanonicalEventRecord]) -> int:
        """
        Run every matching job for a batch of event records.

        The job table is loaded once for the batch. If it cannot be loaded,
        nothing in the batch is dispatched.

        Args:
            records: Event records converted from one bus message

        Returns:
            Number of job processes started
        """
        logger = self._logger.bind(operation="dispatch")

        if not records:
            return 0

        try:
            table = self.loader.load()
        except JobTableError as e:
            logger.error("Failed to read job file, dropping event batch", error=str(e), records=len(records))
            return 0

        def on_invalid(pattern: str, error: re.error) -> None:
            logger.warning("Ignoring invalid filter pattern", pattern=pattern, error=str(error))

        compiled: List[Tuple[JobSpec, _CompiledFilter]] = [
            (job, _CompiledFilter(job.filter, on_invalid)) for job in table.jobs
        ]

        started = 0
        for record in records:
            for job, job_filter in compiled:
                if not job_filter.matches(record):
                    continue

                try:
                    if self.runner.run(job, record):
                        started += 1
                except Exception as e:
                    logger.error(
                        "Job invocation failed",
                        command=job.command,
                        error=str(e),
                        exc_info=True,
                    )

        logger.debug("Dispatched event batch", records=len(records), jobs=len(compiled), started=started)
        return started
