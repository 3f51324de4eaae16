"""Job states, events and their human-readable descriptions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Sequence

#: Maximum log lines to print for failures.
LOG_CONTEXT_LINES = 20

_ROUGH_LIMIT = 40
_OTHER_TEXT = ", and XX other nodes"


def new_job_id() -> uuid.UUID:
    """Returns a fresh opaque job identifier."""
    return uuid.uuid4()


class JobState(Enum):
    """The state of a job."""

    WAITING = "Waiting"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    def is_final(self) -> bool:
        """Returns whether this state is final."""
        return self in (JobState.FAILED, JobState.SUCCEEDED)

    def __str__(self) -> str:
        return self.value


class JobType(Enum):
    """The type of a job."""

    META = "Meta"
    EVALUATE = "Evaluate"
    BUILD = "Build"
    UPLOAD_KEYS = "UploadKeys"
    PUSH = "Push"
    ACTIVATE = "Activate"
    EXECUTE = "Execute"
    CREATE_GC_ROOTS = "CreateGcRoots"
    REBOOT = "Reboot"


class LineStyle(Enum):
    """How a line of progress output is shown."""

    NORMAL = "normal"
    SUCCESS = "success"
    SUCCESS_NOOP = "success-noop"
    FAILURE = "failure"


@dataclass(frozen=True)
class Line:
    """A line of progress output belonging to a job."""

    job_id: uuid.UUID
    text: str
    style: LineStyle = LineStyle.NORMAL
    label: str = ""
    noisy: bool = False

    def with_style(self, style: LineStyle) -> Line:
        """Returns a copy of this line with another style."""
        return replace(self, style=style)


class ProgressKind(Enum):
    """The kind of a message sent to a progress output."""

    HINT_LABEL_WIDTH = "hint-label-width"
    PRINT = "print"
    PRINT_META = "print-meta"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ProgressMessage:
    """A message sent to a progress output."""

    kind: ProgressKind
    line: Line | None = None
    label_width: int | None = None


class EventKind(Enum):
    """The kind of an event sent to the job monitor."""

    CREATION = "created"
    SUCCESS_WITH_MESSAGE = "success"
    FAILURE = "failure"
    NOOP = "noop"
    NEW_STATE = "state"
    CHILD_STDOUT = "stdout"
    CHILD_STDERR = "stderr"
    MESSAGE = "message"
    SHUTDOWN_MONITOR = "shutdown"


@dataclass(frozen=True)
class Event:
    """An event message sent from a job to the monitor.

    ``data`` holds the text for message-like kinds, a JobState for
    NEW_STATE, a ``(JobType, nodes)`` pair for CREATION and None for
    SHUTDOWN_MONITOR.
    """

    job_id: uuid.UUID
    kind: EventKind
    data: Any = None

    def __str__(self) -> str:
        kind = self.kind
        if kind is EventKind.CREATION:
            return " created)"
        if kind is EventKind.SHUTDOWN_MONITOR:
            return "shutdown)"
        return f"{kind.value + ')':>9} {self.data}"


@dataclass
class JobStats:
    """Counts of jobs in each state."""

    waiting: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0

    def __str__(self) -> str:
        parts = [
            f"{count} {name}"
            for count, name in (
                (self.running, "running"),
                (self.succeeded, "succeeded"),
                (self.failed, "failed"),
                (self.waiting, "waiting"),
            )
            if count
        ]
        return ", ".join(parts)


@dataclass
class JobMetadata:
    """What the monitor knows about a job."""

    job_id: uuid.UUID
    job_type: JobType
    nodes: list[str] = field(default_factory=list)
    state: JobState = JobState.WAITING
    custom_message: str | None = None

    def label(self) -> str:
        """Returns a short human-readable label."""
        if self.job_type is JobType.META:
            return ""
        if len(self.nodes) != 1:
            return "(...)"
        return self.nodes[0]

    def get_line(self, text: str) -> Line:
        """Returns a Line with the given text, styled by the job's state."""
        if self.state is JobState.SUCCEEDED:
            style = LineStyle.SUCCESS
        elif self.state is JobState.FAILED:
            style = LineStyle.FAILURE
        else:
            style = LineStyle.NORMAL
        return Line(self.job_id, text, style=style, label=self.label())

    def describe_state_transition(self) -> str | None:
        """Describes the transition into the current state."""
        state = self.state
        if state is JobState.WAITING:
            return None

        node_list = describe_node_list(self.nodes) or "some node(s)"
        message = self.custom_message if self.custom_message is not None else "No message"
        job_type = self.job_type

        running = state is JobState.RUNNING
        succeeded = state is JobState.SUCCEEDED
        failed = state is JobState.FAILED

        if job_type is JobType.META and succeeded:
            return "All done!"
        if job_type is JobType.EVALUATE:
            if running:
                return f"Evaluating {node_list}"
            if succeeded:
                return f"Evaluated {node_list}"
            return f"Evaluation failed: {message}"
        if job_type is JobType.BUILD:
            if running:
                return f"Building {node_list}"
            if succeeded:
                return f"Built {node_list}"
            return f"Build failed: {message}"
        if job_type is JobType.PUSH:
            if running:
                return "Pushing system closure"
            if succeeded:
                return "Pushed system closure"
            return f"Push failed: {message}"
        if job_type is JobType.UPLOAD_KEYS:
            if running:
                return "Uploading keys"
            if succeeded:
                return "Uploaded keys"
            return f"Key upload failed: {message}"
        if job_type is JobType.ACTIVATE:
            if running:
                return "Activating system profile"
            if failed:
                return f"Activation failed: {message}"
        if job_type is JobType.REBOOT:
            if running:
                return "Rebooting"
            if succeeded:
                return "Rebooted"
            return f"Reboot failed: {message}"

        if failed:
            return f"Failed: {message}"
        if succeeded:
            return "Succeeded"
        return ""

    def failure_summary(self) -> str:
        """Describes a failed job for the final summary."""
        node_list = describe_node_list(self.nodes) or "some node(s)"
        summaries = {
            JobType.EVALUATE: f"Failed to evaluate {node_list}",
            JobType.BUILD: f"Failed to build {node_list}",
            JobType.PUSH: f"Failed to push system closure to {node_list}",
            JobType.UPLOAD_KEYS: f"Failed to upload keys to {node_list}",
            JobType.ACTIVATE: f"Failed to deploy to {node_list}",
            JobType.REBOOT: f"Failed to reboot {node_list}",
            JobType.META: "Failed to complete requested operation",
        }
        return summaries.get(self.job_type, f"Failed to complete job on {node_list}")


def describe_node_list(nodes: Sequence[str]) -> str | None:
    """Returns a short description of a list of nodes.

    Example: "alpha, beta, and 5 other nodes". Returns None when empty.
    """
    total = len(nodes)
    if total == 0:
        return None

    text = ""
    followers = list(nodes[1:]) + [None]
    for index, (node, following) in enumerate(zip(nodes, followers)):
        if text:
            if following is None:
                text += ", and " if total > 2 else " and "
            else:
                text += ", "
        text += node

        if following is None:
            break

        remaining_text = _ROUGH_LIMIT - len(text)
        remaining_nodes = total - (index + 1)
        if len(following) + len(_OTHER_TEXT) >= remaining_text:
            if remaining_nodes == 1:
                text += f", and {following}"
            else:
                text += f", and {remaining_nodes} other nodes"
            break

    return text