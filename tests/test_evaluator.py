import asyncio
import json
import sys
import textwrap

import pytest

from colmena.errors import BadOutput, ChildFailure, IoError, UnknownError
from colmena.evaluator import (
    AttributeEvalError,
    AttributeOutput,
    NixEvalJobs,
    get_pinned_nix_eval_jobs,
    parse_eval_line,
)
from colmena.expression import NixExpression, RawNixExpression
from colmena.jobs import EventKind
from colmena.monitor import JobMonitor


def make_program(tmp_path, name, body):
    script = tmp_path / f"{name}.py"
    script.write_text(textwrap.dedent(body))
    launcher = tmp_path / name
    launcher.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    launcher.chmod(0o755)
    return launcher


async def collect(evaluator, expression, flags=None):
    stream = await evaluator.evaluate(expression, flags)
    return [item async for item in stream]


class FlakeExpression(NixExpression):
    def expression(self):
        return "flake-expr"

    def requires_flakes(self):
        return True


def test_parse_derivation_line():
    line = json.dumps({"attr": "alpha", "drvPath": "/nix/store/aaa-alpha.drv"})
    assert parse_eval_line(line) == AttributeOutput("alpha", "/nix/store/aaa-alpha.drv")


def test_parse_strips_quotes_from_dotted_attribute():
    line = json.dumps({"attr": '"a.b"', "drvPath": "/nix/store/x.drv", "extra": 1})
    assert parse_eval_line(line).attribute == "a.b"


def test_parse_attribute_error():
    line = json.dumps({"attr": "b", "error": "an error"})
    assert parse_eval_line(line) == AttributeEvalError("b", "an error")


def test_parse_global_error():
    result = parse_eval_line(json.dumps({"error": "gibberish"}))
    assert isinstance(result, UnknownError)
    assert result.message == "gibberish"


@pytest.mark.parametrize("line", ["not json", "", "[1, 2]", '{"attr": "a"}'])
def test_parse_bad_output(line):
    with pytest.raises(BadOutput):
        parse_eval_line(line)


def test_pinned_executable(monkeypatch):
    monkeypatch.setenv("NIX_EVAL_JOBS", "/opt/pinned/nix-eval-jobs")
    assert get_pinned_nix_eval_jobs() == "/opt/pinned/nix-eval-jobs"
    assert NixEvalJobs().executable == "/opt/pinned/nix-eval-jobs"


def test_default_executable(monkeypatch):
    monkeypatch.delenv("NIX_EVAL_JOBS", raising=False)
    evaluator = NixEvalJobs()
    assert get_pinned_nix_eval_jobs() is None
    assert evaluator.executable == "nix-eval-jobs"
    assert evaluator.workers == 10


@pytest.mark.asyncio
async def test_evaluate_streams_results(tmp_path):
    program = make_program(
        tmp_path,
        "eval-jobs",
        """
        import json
        print(json.dumps({"attr": "a", "drvPath": "/nix/store/aaa-a.drv"}))
        print(json.dumps({"attr": "b", "error": "an error"}))
        print(json.dumps({"error": "global"}))
        print(json.dumps({"attr": '"c.d"', "drvPath": "/nix/store/ccc.drv"}))
        """,
    )
    results = await collect(NixEvalJobs(executable=program), RawNixExpression("x"))
    assert len(results) == 4
    assert results[0] == AttributeOutput("a", "/nix/store/aaa-a.drv")
    assert results[1] == AttributeEvalError("b", "an error")
    assert isinstance(results[2], UnknownError)
    assert results[2].message == "global"
    assert results[3].attribute == "c.d"


@pytest.mark.asyncio
async def test_evaluate_reports_exit_code(tmp_path):
    program = make_program(
        tmp_path,
        "eval-jobs",
        """
        import json, sys
        print(json.dumps({"attr": "a", "drvPath": "/nix/store/aaa-a.drv"}))
        sys.exit(3)
        """,
    )
    results = await collect(NixEvalJobs(executable=program), RawNixExpression("x"))
    assert results[0].attribute == "a"
    assert isinstance(results[1], ChildFailure)
    assert results[1].exit_code == 3
    assert len(results) == 2


@pytest.mark.asyncio
async def test_evaluate_stops_on_bad_output(tmp_path):
    program = make_program(
        tmp_path,
        "eval-jobs",
        """
        import json
        print("not json", flush=True)
        print(json.dumps({"attr": "a", "drvPath": "/nix/store/aaa-a.drv"}))
        """,
    )
    results = await collect(NixEvalJobs(executable=program), RawNixExpression("x"))
    assert len(results) == 1
    assert isinstance(results[0], BadOutput)


@pytest.mark.asyncio
async def test_evaluate_passes_arguments(tmp_path):
    record = tmp_path / "args.json"
    program = make_program(
        tmp_path,
        "eval-jobs",
        f"""
        import json, sys
        with open({str(record)!r}, "w") as f:
            json.dump(sys.argv[1:], f)
        """,
    )
    evaluator = NixEvalJobs(executable=program, workers=4)
    results = await collect(evaluator, FlakeExpression(), ["--option", "x", "y"])
    assert results == []
    assert json.loads(record.read_text()) == [
        "--workers",
        "4",
        "--expr",
        "flake-expr",
        "--option",
        "x",
        "y",
        "--extra-experimental-features",
        "flakes",
    ]


@pytest.mark.asyncio
async def test_evaluate_missing_executable(tmp_path):
    evaluator = NixEvalJobs(executable=tmp_path / "missing")
    with pytest.raises(IoError):
        await evaluator.evaluate(RawNixExpression("x"))


@pytest.mark.asyncio
async def test_evaluate_forwards_stderr_to_job(tmp_path):
    program = make_program(
        tmp_path,
        "eval-jobs",
        """
        import sys
        sys.stderr.write("warning line\\n")
        """,
    )
    monitor, meta = JobMonitor.create(None)
    monitor.finish_delay = 0

    async def body(job):
        evaluator = NixEvalJobs(executable=program, job=job)
        return await collect(evaluator, RawNixExpression("x"))

    results, _ = await asyncio.gather(meta.run(body), monitor.run_until_completion())
    assert results == []
    stderr = [e.data for e in monitor.events if e.kind is EventKind.CHILD_STDERR]
    assert stderr == ["warning line"]