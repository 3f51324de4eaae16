# colmena

Building blocks for tools that deploy NixOS configurations to many hosts at
once. The package is a library driven from asyncio code; it has no
command-line program of its own.

## Modules

- `colmena.goal` – `Goal` lists the deployment goals `build`, `push`,
  `switch`, `boot`, `test`, `dry-activate` and `keys`. `Goal.from_str` parses
  a name (raising `ValueError` for anything else), and the methods
  `requires_activation`, `requires_target_host`, `should_switch_profile`,
  `persists_after_reboot`, `as_str` and `success_str` describe what each goal
  involves.
- `colmena.limits` – `EvaluationNodeLimit` decides how many nodes go into one
  evaluation. `EvaluationNodeLimit.parse("auto")` derives the number from
  `MemAvailable` in `/proc/meminfo` (1024 MB reserved, 512 MB per node, at
  least 1, and 10 if the memory cannot be read); `"0"` means no limit, so
  `get_limit()` returns `None`; any other number is used as given.
  `ParallelismLimit` holds the `asyncio.Semaphore`s that cap evaluation (1)
  and apply (10 by default, changed with `set_apply_limit`) concurrency.
- `colmena.options` – `Options` holds the deployment switches: pushing with
  substitutes, gzip, key upload, reboot, GC roots, forced build on target,
  forced replacement of unknown profiles, and the `EvaluatorType`
  (`chunked` or `streaming`). `to_copy_options()` returns the `CopyOptions`
  used to push closures.
- `colmena.expression` – `nix_quote` turns a string into a quoted Nix string,
  escaping `\`, `"` and `${`. `RawNixExpression` wraps literal Nix source;
  `SerializedNixExpression` embeds JSON-serialisable data as a
  `builtins.fromJSON` expression.
- `colmena.jobs` – job states, job types, events, progress lines and the
  human-readable texts for them, such as `describe_node_list`
  (`"alpha, beta, and 5 other nodes"`).
- `colmena.monitor` – `JobMonitor` collects events from jobs running at the
  same time and passes progress messages to an optional callable. Jobs report
  through `JobHandle` (`create_job`, `run`, `run_waiting`, `message`,
  `stdout`, `stderr`, `state`, `success_with_message`, `noop`, `failure`).
  When the meta job ends, the monitor stops and logs the last 20 events of
  every job that failed. `null_job_handle()` gives a handle that only logs at
  debug level.
- `colmena.evaluator` – `NixEvalJobs.evaluate` starts `nix-eval-jobs` and
  returns an async iterator. Each item is an `AttributeOutput`, an
  `AttributeEvalError` for one attribute, or a `ColmenaError` that ends the
  evaluation. Standard error lines of the child go to the job handle.
  `parse_eval_line` reads one output line by itself.
- `colmena.flake` – `Flake.from_dir` and `Flake.from_uri` resolve metadata
  with `nix flake metadata --json`; `lock_flake_quiet` runs `nix flake lock`.
- `colmena.errors` – `ColmenaError` and its subclasses. Failures of Nix and of
  child processes are raised as these; `from_exit_status` turns a return code
  into `ChildFailure`, or `ChildKilled` when it is negative.

## Example

```python
import asyncio

from colmena.jobs import JobType
from colmena.monitor import JobMonitor


async def main():
    monitor, meta = JobMonitor.create(print)

    async def work(job):
        build = job.create_job(JobType.BUILD, ["alpha"])

        async def do_build(handle):
            handle.message("building...")
            return "done"

        return await build.run(do_build)

    result, _ = await asyncio.gather(
        meta.run(work),
        monitor.run_until_completion(),
    )
    print(result)


asyncio.run(main())
```

The monitor waits `JobMonitor.finish_delay` seconds (1 by default) before
logging its summary.

`NixEvalJobs` needs `nix-eval-jobs` on `PATH`, and the flake functions need
`nix`. The executable used by `NixEvalJobs` can be pinned with the
`NIX_EVAL_JOBS` environment variable; `get_pinned_nix_eval_jobs()` returns it.

## What it does not do

The package does not load a hive or flake configuration, select nodes, talk
to hosts over SSH, build, push or activate system profiles, upload keys or
reboot machines, and it draws no progress spinners. It provides the goals,
limits, options, expressions, job monitoring, evaluation and flake
resolution that such a tool is built from.

## Tests

```
pip install -e '.[test]'
pytest
```