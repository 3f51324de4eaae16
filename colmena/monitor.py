"""Job control.

Jobs send events through a channel to a job monitor, which keeps track of
their states and drives the progress output.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from .errors import ColmenaError, UnknownError
from .jobs import (
    LOG_CONTEXT_LINES,
    Event,
    EventKind,
    JobMetadata,
    JobState,
    JobStats,
    JobType,
    Line,
    LineStyle,
    ProgressKind,
    ProgressMessage,
    new_job_id,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

#: Receives messages destined for a progress output.
ProgressSink = Callable[[ProgressMessage], None]


class _Channel:
    """An unbounded event channel that refuses events once closed."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self.closed = False

    def send(self, event: Event) -> None:
        if self.closed:
            raise UnknownError("channel closed")
        self._queue.put_nowait(event)

    async def receive(self) -> Event:
        return await self._queue.get()


class JobHandle:
    """A handle to a job, used to report its progress to the monitor."""

    def __init__(self, job_id: uuid.UUID, channel: _Channel | None) -> None:
        self.job_id = job_id
        self._channel = channel

    def create_job(self, job_type: JobType, nodes: Sequence[str]) -> JobHandle:
        """Creates a new job with a distinct ID and announces it."""
        if job_type is JobType.META:
            raise UnknownError("Cannot create a meta job!")
        handle = JobHandle(new_job_id(), self._channel)
        handle._send(EventKind.CREATION, (job_type, list(nodes)))
        return handle

    async def run(self, func: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Runs ``func``, marking the job Running first and reporting the outcome."""
        return await self._run_internal(func, report_running=True)

    async def run_waiting(self, func: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Runs ``func`` and reports the outcome, leaving the job Waiting at first."""
        return await self._run_internal(func, report_running=False)

    def stdout(self, output: str) -> None:
        """Sends a line of child stdout to the monitor."""
        self._send(EventKind.CHILD_STDOUT, output)

    def stderr(self, output: str) -> None:
        """Sends a line of child stderr to the monitor."""
        self._send(EventKind.CHILD_STDERR, output)

    def message(self, message: str) -> None:
        """Sends a human-readable message to the monitor."""
        self._send(EventKind.MESSAGE, message)

    def state(self, new_state: JobState) -> None:
        """Transitions to a new job state."""
        self._send(EventKind.NEW_STATE, new_state)

    def success_with_message(self, message: str) -> None:
        """Marks the job as successful, with a custom message."""
        self._send(EventKind.SUCCESS_WITH_MESSAGE, message)

    def noop(self, message: str) -> None:
        """Marks the job as a no-op."""
        self._send(EventKind.NOOP, message)

    def failure(self, error: BaseException) -> None:
        """Marks the job as failed."""
        self._send(EventKind.FAILURE, str(error))

    async def _run_internal(
        self, func: Callable[[JobHandle], Awaitable[T]], report_running: bool
    ) -> T:
        if report_running:
            self.state(JobState.RUNNING)
        try:
            value = await func(self)
        except ColmenaError as error:
            self.failure(error)
            raise
        self.state(JobState.SUCCEEDED)
        return value

    def _send(self, kind: EventKind, data: Any = None) -> None:
        if kind is EventKind.SHUTDOWN_MONITOR:
            raise RuntimeError("Tried to send privileged payload with JobHandle")
        event = Event(self.job_id, kind, data)
        if self._channel is None:
            log.debug("Sending event: %r", event)
        else:
            self._channel.send(event)


class MetaJobHandle:
    """A handle to the meta job; finishing it shuts the monitor down."""

    def __init__(self, job_id: uuid.UUID, channel: _Channel) -> None:
        self.job_id = job_id
        self._channel = channel

    async def run(self, func: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Runs ``func`` as the meta job, then tells the monitor to stop."""
        handle = JobHandle(self.job_id, self._channel)
        try:
            value = await func(handle)
        except ColmenaError as error:
            self._send(EventKind.FAILURE, str(error))
            raise
        else:
            self._send(EventKind.NEW_STATE, JobState.SUCCEEDED)
            return value
        finally:
            self._send(EventKind.SHUTDOWN_MONITOR)

    def _send(self, kind: EventKind, data: Any = None) -> None:
        self._channel.send(Event(self.job_id, kind, data))


class JobMonitor:
    """Coordinator of all job states.

    Receives events from jobs and forwards lines to the progress output.
    """

    #: Seconds to wait after completing before printing the summary.
    finish_delay = 1.0

    def __init__(
        self, channel: _Channel, meta_job_id: uuid.UUID, progress: ProgressSink | None
    ) -> None:
        self._channel = channel
        self.meta_job_id = meta_job_id
        self.progress = progress
        self.label_width: int | None = None
        self.events: list[Event] = []
        self.jobs: dict[uuid.UUID, JobMetadata] = {
            meta_job_id: JobMetadata(
                meta_job_id, JobType.META, [], JobState.RUNNING, None
            )
        }

    @classmethod
    def create(cls, progress: ProgressSink | None) -> tuple[JobMonitor, MetaJobHandle]:
        """Creates a monitor together with the handle of its meta job."""
        channel = _Channel()
        meta_job_id = new_job_id()
        return cls(channel, meta_job_id, progress), MetaJobHandle(meta_job_id, channel)

    async def run_until_completion(self) -> JobMonitor:
        """Processes events until the meta job finishes."""
        if self.label_width is not None and self.progress is not None:
            self.progress(
                ProgressMessage(ProgressKind.HINT_LABEL_WIDTH, label_width=self.label_width)
            )

        while True:
            event = await self._channel.receive()
            kind = event.kind

            if kind is EventKind.CREATION:
                job_type, nodes = event.data
                if event.job_id in self.jobs:
                    raise AssertionError("Job created twice")
                self.jobs[event.job_id] = JobMetadata(
                    event.job_id, job_type, list(nodes), JobState.WAITING, None
                )
            elif kind is EventKind.SHUTDOWN_MONITOR:
                if event.job_id != self.meta_job_id:
                    raise AssertionError("Only the meta job may shut the monitor down")
                return await self._finish()
            elif kind in (
                EventKind.NEW_STATE,
                EventKind.SUCCESS_WITH_MESSAGE,
                EventKind.NOOP,
                EventKind.FAILURE,
            ):
                self._handle_transition(event)
                if event.job_id != self.meta_job_id:
                    self._print_job_stats()
            elif self.progress is not None:
                line = self.jobs[event.job_id].get_line(event.data)
                self.progress(self._print_message(event.job_id, line))

            self.events.append(event)

    def _handle_transition(self, event: Event) -> None:
        kind = event.kind
        if kind is EventKind.NEW_STATE:
            self._update_job_state(event.job_id, event.data, None, noop=False)
        elif kind is EventKind.SUCCESS_WITH_MESSAGE:
            self._update_job_state(event.job_id, JobState.SUCCEEDED, event.data, noop=False)
        elif kind is EventKind.NOOP:
            self._update_job_state(event.job_id, JobState.SUCCEEDED, event.data, noop=True)
        else:
            self._update_job_state(event.job_id, JobState.FAILED, event.data, noop=False)

    def _update_job_state(
        self, job_id: uuid.UUID, new_state: JobState, message: str | None, noop: bool
    ) -> None:
        metadata = self.jobs[job_id]
        old_state = metadata.state

        if old_state is new_state:
            return
        if old_state.is_final():
            log.debug("Tried to update the state of a finished job")
            return

        metadata.state = new_state
        if message is not None:
            metadata.custom_message = message

        if new_state is JobState.WAITING or self.progress is None:
            return

        if new_state is JobState.SUCCEEDED and metadata.custom_message is not None:
            text: str | None = metadata.custom_message
        else:
            text = metadata.describe_state_transition()

        if text is None:
            return

        line = metadata.get_line(text)
        if noop:
            line = line.with_style(LineStyle.SUCCESS_NOOP)
        self.progress(self._print_message(job_id, line))

    def _job_stats(self) -> JobStats:
        stats = JobStats()
        for job in self.jobs.values():
            if job.job_id == self.meta_job_id:
                continue
            if job.state is JobState.WAITING:
                stats.waiting += 1
            elif job.state is JobState.RUNNING:
                stats.running += 1
            elif job.state is JobState.SUCCEEDED:
                stats.succeeded += 1
            else:
                stats.failed += 1
        return stats

    def _print_job_stats(self) -> None:
        if self.progress is None:
            return
        text = str(self._job_stats())
        line = replace(self.jobs[self.meta_job_id].get_line(text), noisy=True)
        self.progress(ProgressMessage(ProgressKind.PRINT_META, line=line))

    def _print_message(self, job_id: uuid.UUID, line: Line) -> ProgressMessage:
        kind = ProgressKind.PRINT_META if job_id == self.meta_job_id else ProgressKind.PRINT
        return ProgressMessage(kind, line=line)

    async def _finish(self) -> JobMonitor:
        self._channel.closed = True

        if self.progress is not None:
            self.progress(ProgressMessage(ProgressKind.COMPLETE))
            self.progress = None

        await asyncio.sleep(self.finish_delay)

        for job in self.jobs.values():
            if job.state is not JobState.FAILED:
                continue
            logs = [e for e in self.events if e.job_id == job.job_id]
            last_logs = logs[-LOG_CONTEXT_LINES:]
            log.error("%s - Last %d lines of logs:", job.failure_summary(), len(last_logs))
            for event in last_logs:
                log.error("%s", event)

        return self


def null_job_handle() -> JobHandle:
    """Returns a JobHandle that is not connected to any monitor."""
    return JobHandle(new_job_id(), None)