from unittest.mock import MagicMock

import pytest

from cli_agent.config import Settings
from cli_agent.errors import ErrorKind, PlanningError, PlanningFailure, ProviderUnavailable
from cli_agent.models import (
    ActionKind,
    HistoryEntry,
    Plan,
    PlanStep,
    ProgressEvent,
    SessionStatus,
    ToolName,
    ToolResult,
)
from cli_agent.orchestrator import SURVEY_DESCRIPTION, Orchestrator


def _plan(*descriptions):
    return Plan(steps=[
        PlanStep(index=i, description=d, raw_text=f"{i}. {d}")
        for i, d in enumerate(descriptions, start=1)
    ])


def _ok(step, context):
    return HistoryEntry(
        step_description=step.description,
        action_kind=ActionKind.TOOL_CALL,
        output=f"did {step.description}",
    )


def _failed(step, context):
    return HistoryEntry(
        step_description=step.description,
        action_kind=ActionKind.TOOL_CALL,
        succeeded=False,
        error="command exited with status 1",
        error_kind=ErrorKind.TOOL_FAILURE,
    )


def _substitutes(plans, satisfied=True):
    planner = MagicMock()
    planner.create_plan.side_effect = plans
    executor = MagicMock()
    executor.execute_step.side_effect = _ok
    checker = MagicMock()
    if isinstance(satisfied, list):
        checker.evaluate.side_effect = [(s, "") for s in satisfied]
    else:
        checker.evaluate.return_value = (satisfied, "")
    return planner, executor, checker

# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------

def test_done_in_one_round_and_n_steps():
    planner, executor, checker = _substitutes([_plan("a", "b", "c")])
    report = Orchestrator("goal", planner, executor, goal_checker=checker).run()

    assert report.status is SessionStatus.DONE
    assert report.succeeded
    assert report.planning_rounds == 1
    assert report.steps_executed == 3
    assert planner.create_plan.call_count == 1
    assert executor.execute_step.call_count == 3
    checker.evaluate.assert_called_once()
    assert [e.step_description for e in report.transcript] == ["a", "b", "c"]

def test_steps_run_strictly_in_order():
    planner, executor, checker = _substitutes([_plan("first", "second", "third")])
    Orchestrator("goal", planner, executor, goal_checker=checker).run()
    order = [c.args[0].index for c in executor.execute_step.call_args_list]
    assert order == [1, 2, 3]

def test_exhaustion_policy_needs_no_goal_check():
    planner, executor, _ = _substitutes([_plan("a")])
    report = Orchestrator("goal", planner, executor, goal_checker=None).run()
    assert report.status is SessionStatus.DONE
    assert report.planning_rounds == 1

# ---------------------------------------------------------------------------
# Re-plan budget
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("budget", [0, 1, 3])
def test_parse_failures_stop_after_budget_plus_one_attempts(budget):
    planner = MagicMock()
    planner.create_plan.side_effect = PlanningError(PlanningFailure.PARSE_FAILURE, "no plan steps found")
    executor = MagicMock()

    report = Orchestrator("goal", planner, executor, replan_budget=budget).run()

    assert report.status is SessionStatus.FAILED
    assert report.error_kind is ErrorKind.PARSE_FAILURE
    assert planner.create_plan.call_count == budget + 1
    assert report.planning_rounds == budget + 1
    executor.execute_step.assert_not_called()
    # every failed round is part of the transcript
    assert len(report.transcript) == budget + 1
    assert all(not e.succeeded for e in report.transcript)

def test_provider_outage_reports_provider_failure():
    planner = MagicMock()
    planner.create_plan.side_effect = PlanningError(PlanningFailure.LLM_UNAVAILABLE, "timed out")
    report = Orchestrator("goal", planner, MagicMock(), replan_budget=1).run()
    assert report.error_kind is ErrorKind.PROVIDER_FAILURE
    assert "timed out" in report.error

def test_planning_recovers_after_transient_failure():
    planner, executor, checker = _substitutes([
        PlanningError(PlanningFailure.PARSE_FAILURE, "no plan steps found"),
        _plan("a"),
    ])
    report = Orchestrator("goal", planner, executor, goal_checker=checker, replan_budget=1).run()
    assert report.status is SessionStatus.DONE
    assert report.planning_rounds == 2

def test_failed_step_triggers_replan_and_drops_rest_of_plan():
    planner, executor, checker = _substitutes([_plan("break", "never runs"), _plan("fix")])
    executor.execute_step.side_effect = [
        _failed(PlanStep(index=1, description="break"), None),
        _ok(PlanStep(index=1, description="fix"), None),
    ]
    report = Orchestrator("goal", planner, executor, goal_checker=checker).run()

    assert report.status is SessionStatus.DONE
    assert report.planning_rounds == 2
    assert report.steps_executed == 2
    descriptions = [c.args[0].description for c in executor.execute_step.call_args_list]
    assert descriptions == ["break", "fix"]

def test_step_failures_exhaust_budget():
    planner = MagicMock()
    planner.create_plan.side_effect = lambda goal, context: _plan("always fails")
    executor = MagicMock()
    executor.execute_step.side_effect = _failed

    report = Orchestrator("goal", planner, executor, replan_budget=2).run()

    assert report.status is SessionStatus.FAILED
    assert report.error_kind is ErrorKind.TOOL_FAILURE
    assert planner.create_plan.call_count == 3
    assert "always fails" in report.error

def test_unsatisfied_goal_consumes_budget():
    planner, executor, checker = _substitutes([_plan("a"), _plan("b")], satisfied=[False, True])
    report = Orchestrator("goal", planner, executor, goal_checker=checker).run()

    assert report.status is SessionStatus.DONE
    assert report.planning_rounds == 2
    goal_notes = [e for e in report.transcript if e.step_description == "Goal check"]
    assert len(goal_notes) == 1

def test_goal_check_reason_is_recorded():
    planner, executor, checker = _substitutes([_plan("a")])
    checker.evaluate.return_value = (False, "tests were never run")
    report = Orchestrator("goal", planner, executor, goal_checker=checker, replan_budget=0).run()

    assert report.status is SessionStatus.FAILED
    note = report.transcript[-1]
    assert note.step_description == "Goal check"
    assert note.error.endswith(": tests were never run")

def test_goal_check_outage_counts_as_unsatisfied():
    planner, executor, checker = _substitutes([_plan("a")])
    checker.evaluate.side_effect = ProviderUnavailable("down")
    report = Orchestrator("goal", planner, executor, goal_checker=checker, replan_budget=0).run()
    assert report.status is SessionStatus.FAILED
    assert report.error_kind is ErrorKind.PROVIDER_FAILURE

def test_negative_budget_is_rejected():
    with pytest.raises(ValueError):
        Orchestrator("goal", MagicMock(), MagicMock(), replan_budget=-1)

# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

def test_cancel_before_run_never_plans():
    planner, executor, checker = _substitutes([_plan("a")])
    orchestrator = Orchestrator("goal", planner, executor, goal_checker=checker)
    orchestrator.cancel()
    report = orchestrator.run()

    assert report.status is SessionStatus.FAILED
    assert report.error_kind is ErrorKind.CANCELLED
    planner.create_plan.assert_not_called()

def test_cancel_mid_plan_starts_no_new_step():
    planner, executor, checker = _substitutes([_plan("a", "b", "c")])
    orchestrator = Orchestrator("goal", planner, executor, goal_checker=checker, replan_budget=5)

    def cancel_during(step, context):
        orchestrator.cancel()
        return _ok(step, context)

    executor.execute_step.side_effect = cancel_during
    report = orchestrator.run()

    assert report.status is SessionStatus.FAILED
    assert report.error_kind is ErrorKind.CANCELLED
    assert report.steps_executed == 1
    assert executor.execute_step.call_count == 1
    checker.evaluate.assert_not_called()
    # the in-flight step still lands in the transcript
    assert report.transcript[0].step_description == "a"

# ---------------------------------------------------------------------------
# Workspace survey and progress events
# ---------------------------------------------------------------------------

def test_survey_is_first_history_entry():
    planner, executor, checker = _substitutes([_plan("a")])
    dispatcher = MagicMock()
    dispatcher.dispatch.return_value = ToolResult(succeeded=True, output="README.md\nsrc/")

    orchestrator = Orchestrator(
        "goal", planner, executor, goal_checker=checker,
        dispatcher=dispatcher, survey_workspace=True,
    )
    report = orchestrator.run()

    call = dispatcher.dispatch.call_args.args[0]
    assert call.tool_name is ToolName.LIST_FILES
    assert call.arguments == {"path": "."}
    first = report.transcript[0]
    assert first.step_description == SURVEY_DESCRIPTION
    assert first.action_kind is ActionKind.NOTE
    assert first.output == "README.md\nsrc/"
    # the planner saw the listing
    context = planner.create_plan.call_args.args[1]
    assert "README.md" in context.render(10_000)

def test_observer_receives_events():
    planner, executor, checker = _substitutes([_plan("a", "b")])
    observer = MagicMock()
    Orchestrator("goal", planner, executor, goal_checker=checker, observer=observer).run()

    plan, planning_round = observer.plan_created.call_args.args
    assert len(plan) == 2
    assert planning_round == 1
    assert observer.step_started.call_count == 2
    events = [c.args[0] for c in observer.step_finished.call_args_list]
    assert all(isinstance(e, ProgressEvent) for e in events)
    assert [(e.step_index, e.total_steps) for e in events] == [(1, 2), (2, 2)]
    assert events[0].summary == "did a"

def test_observer_hears_about_replanning():
    planner, executor, checker = _substitutes([_plan("a"), _plan("b")], satisfied=[False, True])
    observer = MagicMock()
    Orchestrator("goal", planner, executor, goal_checker=checker, replan_budget=2, observer=observer).run()
    reason, remaining = observer.replanning.call_args.args
    assert "goal not satisfied" in reason
    assert remaining == 1

def test_observer_without_handlers_is_ignored():
    planner, executor, checker = _substitutes([_plan("a")])
    report = Orchestrator("goal", planner, executor, goal_checker=checker, observer=object()).run()
    assert report.succeeded

# ---------------------------------------------------------------------------
# Wiring from settings
# ---------------------------------------------------------------------------

def test_from_settings_end_to_end(scripted, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notes.txt").write_text("hello from disk")
    provider = scripted(["1. [ReadFile] notes.txt", "YES"])

    orchestrator = Orchestrator.from_settings("Read my notes", Settings(), provider)
    report = orchestrator.run()

    assert report.status is SessionStatus.DONE
    assert report.transcript[0].step_description == SURVEY_DESCRIPTION
    assert "notes.txt" in report.transcript[0].output
    assert report.transcript[1].output == "hello from disk"
    assert len(provider.prompts) == 2

def test_from_settings_exhaustion_skips_goal_check(scripted, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    provider = scripted(["1. [ListFiles] ."])
    settings = Settings(completion_check="exhaustion", survey_workspace=False)

    report = Orchestrator.from_settings("Look around", settings, provider).run()

    assert report.status is SessionStatus.DONE
    assert len(report.transcript) == 1
    assert len(provider.prompts) == 1

def test_from_settings_routes_planning_to_planner_provider(scripted, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    coder = scripted(["print('hi')"])
    reasoner = scripted([
        "1. [WriteFile] hi.py that prints hi",
        '{"satisfied": true, "reason": "hi.py exists"}',
    ])
    settings = Settings(survey_workspace=False)

    report = Orchestrator.from_settings(
        "Write hi.py", settings, coder, planner_provider=reasoner
    ).run()

    assert report.status is SessionStatus.DONE
    assert (tmp_path / "hi.py").read_text() == "print('hi')"
    assert len(coder.prompts) == 1
    assert len(reasoner.prompts) == 2
    assert reasoner.options[1].json_mode is True

def test_binary_command_output_still_yields_a_report(scripted, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    provider = scripted([r"1. [RunCommand] `printf '\377\376'`"])
    settings = Settings(completion_check="exhaustion", survey_workspace=False)

    report = Orchestrator.from_settings("Dump bytes", settings, provider).run()

    assert report.status is SessionStatus.DONE
    assert report.transcript[0].succeeded is True
    assert "\ufffd" in report.transcript[0].output
