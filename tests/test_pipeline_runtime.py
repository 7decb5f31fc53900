"""Tests for the ordered step runner."""

import pytest

from support_chat.pipeline_runtime import PipelineRunner, PipelineStep


def test_steps_run_in_order_and_skip_guard_sees_earlier_changes():
    seen = []
    runner = PipelineRunner(
        [
            PipelineStep("first", lambda ctx: ctx.update(done=True) or seen.append("first")),
            PipelineStep("second", lambda ctx: seen.append("second"), skip_if=lambda ctx: ctx["done"]),
            PipelineStep("third", lambda ctx: seen.append("third")),
        ]
    )
    runner.run({"done": False})
    assert seen == ["first", "third"]
    assert runner.step_names == ["first", "second", "third"]


def test_step_error_stops_the_run():
    seen = []

    def boom(ctx):
        raise RuntimeError("boom")

    runner = PipelineRunner([PipelineStep("boom", boom), PipelineStep("after", lambda ctx: seen.append("after"))])
    with pytest.raises(RuntimeError):
        runner.run({})
    assert seen == []
