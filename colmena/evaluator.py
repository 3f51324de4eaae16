"""Derivation set evaluation with nix-eval-jobs.

An evaluator evaluates an attribute set of derivations, possibly in
parallel, and emits a result as soon as each attribute finishes.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence, Union

from .errors import BadOutput, ColmenaError, IoError, UnknownError, from_exit_status
from .expression import NixExpression
from .monitor import JobHandle, null_job_handle

log = logging.getLogger(__name__)

#: Environment variable that pins the nix-eval-jobs binary.
PIN_VARIABLE = "NIX_EVAL_JOBS"

_DEFAULT_EXECUTABLE = "nix-eval-jobs"
_DEFAULT_WORKERS = 10


@dataclass(frozen=True)
class AttributeOutput:
    """The evaluation output of one attribute."""

    attribute: str
    drv_path: str


@dataclass(frozen=True)
class AttributeEvalError:
    """An error confined to a single attribute."""

    attribute: str
    error: str


#: One item of an evaluation: an attribute's output, an attribute-level
#: error, or a ColmenaError that applies to the whole evaluation.
EvalResult = Union[AttributeOutput, AttributeEvalError, ColmenaError]


def get_pinned_nix_eval_jobs() -> str | None:
    """Returns the pinned nix-eval-jobs executable, if any."""
    return os.environ.get(PIN_VARIABLE) or None


def parse_eval_line(line: str) -> EvalResult:
    """Interprets one line of nix-eval-jobs output.

    Raises BadOutput if the line is not a recognised JSON object.
    """
    try:
        data = json.loads(line.strip())
    except json.JSONDecodeError as error:
        raise BadOutput(str(error)) from None

    if isinstance(data, dict):
        attribute = data.get("attr")
        drv_path = data.get("drvPath")
        error = data.get("error")
        if isinstance(attribute, str) and isinstance(drv_path, str):
            # Attribute names containing dots come back surrounded by quotes.
            return AttributeOutput(attribute.strip('"'), drv_path)
        if isinstance(attribute, str) and isinstance(error, str):
            return AttributeEvalError(attribute, error)
        if isinstance(error, str):
            return UnknownError(error)

    raise BadOutput("data did not match any variant of untagged enum EvalLine")


async def _forward_stderr(stream: asyncio.StreamReader, job: JobHandle) -> None:
    forwarding = True
    async for raw in stream:
        if not forwarding:
            continue
        text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        try:
            job.stderr(text)
        except ColmenaError as error:
            log.debug("Stopped forwarding stderr: %s", error)
            forwarding = False


@dataclass
class NixEvalJobs:
    """An evaluator that runs nix-eval-jobs to evaluate attributes in parallel."""

    executable: str | None = None
    job: JobHandle = field(default_factory=null_job_handle)
    workers: int = _DEFAULT_WORKERS

    def __post_init__(self) -> None:
        if self.executable is None:
            self.executable = get_pinned_nix_eval_jobs() or _DEFAULT_EXECUTABLE
        else:
            self.executable = os.fspath(self.executable)

    async def evaluate(
        self, expression: NixExpression, flags: Sequence[str] | None = None
    ) -> AsyncIterator[EvalResult]:
        """Starts the evaluation and returns an iterator over its results."""
        args = [
            str(self.executable),
            "--workers",
            str(self.workers),
            "--expr",
            expression.expression(),
            *(flags or ()),
        ]
        if expression.requires_flakes():
            args += ["--extra-experimental-features", "flakes"]

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            raise IoError(error) from error

        stderr_task = asyncio.create_task(_forward_stderr(process.stderr, self.job))
        return self._results(process, stderr_task)

    @staticmethod
    async def _results(
        process: asyncio.subprocess.Process, stderr_task: asyncio.Task
    ) -> AsyncIterator[EvalResult]:
        try:
            while True:
                try:
                    raw = await process.stdout.readline()
                except OSError as error:
                    yield IoError(error)
                    return

                if not raw:
                    returncode = await process.wait()
                    if returncode != 0:
                        yield from_exit_status(returncode)
                    return

                try:
                    result = parse_eval_line(raw.decode("utf-8", errors="replace"))
                except BadOutput as error:
                    yield error
                    return
                yield result
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            await stderr_task