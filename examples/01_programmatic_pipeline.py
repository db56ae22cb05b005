#!/usr/bin/env python3
"""
🏁 Example 01: Building and Running a Pipeline in Code

This example teaches:
- Declaring Steps with ${symbol} path placeholders
- Validating a Pipeline before anything runs
- Watching progress through an observer
- Reading PipelineSuccess / PipelineFailure

The "toolchain" here is the Python interpreter itself, so the example runs
anywhere. The third step fails on purpose to show fail-fast behaviour.

Run: python examples/01_programmatic_pipeline.py
"""

import asyncio
import sys
import tempfile

from hexbuild import Pipeline, PipelineExecutor, Step
from hexbuild.kernel.orchestration.events import Event, StepCompleted, StepFailed


def python(code: str, *args: str, **kwargs) -> Step:
    """A step running a snippet of Python with extra argv entries."""
    return Step(sys.executable, ["-c", code, *args], **kwargs)


WRITE = "import sys, pathlib; pathlib.Path(sys.argv[1]).write_text(sys.argv[2])"
COPY = "import sys, shutil; shutil.copyfile(sys.argv[1], sys.argv[2])"
FAIL = "import sys; sys.stderr.write('toText: malformed section\\n'); sys.exit(1)"


def observer(event: Event) -> None:
    match event:
        case StepCompleted():
            print(f"   ✓ {event.name} ({event.duration_ms:.0f}ms)")
        case StepFailed():
            print(f"   ✗ {event.name}: {event.error}")


async def main():
    """Run one pipeline that succeeds and one that fails at its third step."""

    print("🏁 Example 01: Building and Running a Pipeline in Code")
    print("=" * 50)

    workdir = tempfile.mkdtemp(prefix="hexbuild-example-")
    steps = [
        python(WRITE, "${compiled}", "module-bytes", name="compile"),
        python(COPY, "${compiled}", "${artifact}", name="gc", produces_artifact=True),
    ]
    pipeline = Pipeline(
        steps=steps,
        artifact="${target_dir}/module.wasm",
        name="example",
        working_dir=workdir,
        paths={"compiled": "${target_dir}/module.raw.wasm"},
    )

    print("\n🔍 Validating...")
    pipeline.validate()
    print("   ✓ valid")

    executor = PipelineExecutor(default_step_timeout=30, observers=[observer])

    print("\n🚀 Running the two-step pipeline...")
    result = await executor.run(pipeline)
    print(f"   artifact: {result.artifact_path}")

    print("\n💥 Running again with a failing third step...")
    failing = Pipeline(
        steps=[*steps, python(FAIL, name="toText"), python(WRITE, "${artifact}", "never")],
        artifact=pipeline.artifact,
        name="example-failing",
        working_dir=workdir,
        paths=pipeline.paths,
    )
    result = await executor.run(failing)
    print(f"   failed at step {result.failed_step_index}: {type(result.cause).__name__}")
    print(f"   stderr: {result.stderr_excerpt.strip()}")


if __name__ == "__main__":
    asyncio.run(main())
