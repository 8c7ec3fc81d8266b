#!/usr/bin/env python3
"""Tests for plan parsing and sequential step execution."""
import threading
from unittest.mock import MagicMock

import pytest

from config import PlannerConfig
from local_agent import context_log
from runtime.plan_runner import (
    GENERIC,
    NAVIGATE,
    OPEN,
    WAIT,
    ComplexCommandPlanner,
    build_prompt,
    classify_step,
    parse_plan,
)

EXAMPLE = "1. Open Firefox browser\n2. Navigate to web.whatsapp.com"


class TestParsePlan:
    def test_numbering_stripped_in_order(self):
        plan = parse_plan(EXAMPLE)
        assert plan.texts == ["Open Firefox browser", "Navigate to web.whatsapp.com"]
        assert plan.warnings == []

    def test_blank_and_comment_lines_ignored(self):
        plan = parse_plan("# plan\n\n1. open terminal\n   \n2. # note\n3. type ls\n")
        assert plan.texts == ["open terminal", "type ls"]
        assert plan.warnings == []

    def test_number_only_line_is_warned(self):
        plan = parse_plan("1. open terminal\n2.\n3. press enter")
        assert plan.texts == ["open terminal", "press enter"]
        assert len(plan.warnings) == 1
        assert "line 2" in plan.warnings[0]

    def test_step_limit(self):
        response = "\n".join(f"{i}. press tab" for i in range(1, 26))
        plan = parse_plan(response, max_steps=20)
        assert len(plan.steps) == 20
        assert len(plan.warnings) == 5

    def test_unnumbered_lines_are_steps(self):
        assert parse_plan("open firefox\ngo to example.com").texts == ["open firefox", "go to example.com"]

    def test_empty_response(self):
        plan = parse_plan("")
        assert plan.steps == [] and plan.warnings == []


class TestClassifyStep:
    def test_open(self):
        step = classify_step("Open Firefox browser")
        assert (step.kind, step.payload) == (OPEN, "firefox browser")

    def test_navigate_variants(self):
        assert classify_step("Navigate to web.whatsapp.com").payload == "web.whatsapp.com"
        assert classify_step("go to example.com").kind == NAVIGATE

    def test_wait_is_containment(self):
        assert classify_step("Wait for the page to load").kind == WAIT

    def test_generic(self):
        step = classify_step("What Time Is It")
        assert (step.kind, step.payload) == (GENERIC, "what time is it")


def test_prompt_embeds_utterance():
    prompt = build_prompt("open whatsapp web in firefox")
    assert prompt.startswith("You are I.R.I.S, an AI assistant. Break down this command into simple steps: "
                             "'open whatsapp web in firefox'.")
    assert "1. Open Firefox browser\n2. Navigate to web.whatsapp.com\n" in prompt


@pytest.fixture
def parts():
    ai = MagicMock()
    ai.process_query.return_value = EXAMPLE
    system = MagicMock()
    system.open_application.return_value = "Opening Firefox"
    automation = MagicMock()
    automation.navigate_to_url.return_value = "Navigating to: https://web.whatsapp.com"
    automation.type_text.return_value = "Typing: hi"
    automation.press_key.return_value = "Pressed: Return"
    router = MagicMock()
    router.route.return_value = "routed"
    waits = []

    def ready(step, timeout):
        waits.append((step.text, timeout))
        return True

    return ai, router, system, automation, waits, ready


def make_planner(parts, **kwargs):
    ai, router, system, automation, waits, ready = parts
    kwargs.setdefault("wait_until_ready", ready)
    kwargs.setdefault("record", False)
    return ComplexCommandPlanner(PlannerConfig(), ai, router, system, automation, **kwargs)


class TestComplexCommandPlanner:
    """Execution order, failure handling, pacing and cancellation."""

    def test_report_format(self, parts):
        planner = make_planner(parts)
        report = planner.handle("open whatsapp web in firefox")
        assert report == (
            "📋 PLANNED ACTIONS:\n\n" + EXAMPLE + "\n\n⚡ Executing actions...\n"
            "\n✓ Opening Firefox"
            "\n✓ Navigating to: https://web.whatsapp.com"
            "\n\n✅ All actions completed!"
        )

    def test_steps_run_in_order(self, parts):
        ai, router, system, automation, waits, ready = parts
        calls = []
        system.open_application.side_effect = lambda name: calls.append(("open", name)) or "ok"
        automation.navigate_to_url.side_effect = lambda url: calls.append(("nav", url)) or "ok"
        make_planner(parts).handle("open whatsapp web in firefox")
        assert calls == [("open", "firefox browser"), ("nav", "web.whatsapp.com")]
        assert ai.process_query.call_args[0][0] == build_prompt("open whatsapp web in firefox")

    def test_pacing_between_steps_only(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. open firefox\n2. go to a.com\n3. type hi"
        make_planner(parts).handle("open firefox and type hi")
        assert waits == [("go to a.com", 1.5), ("type hi", 1.5)]

    def test_failed_step_does_not_abort(self, parts):
        ai, router, system, automation, waits, ready = parts
        system.open_application.return_value = "I couldn't open Firefox: firefox is not installed"
        report = make_planner(parts).handle("open whatsapp web in firefox")
        assert "\n✗ I couldn't open Firefox: firefox is not installed" in report
        assert "\n✓ Navigating to: https://web.whatsapp.com" in report
        assert report.endswith("✅ All actions completed!")
        automation.navigate_to_url.assert_called_once()

    def test_exception_is_recorded(self, parts):
        ai, router, system, automation, waits, ready = parts
        system.open_application.side_effect = RuntimeError("boom")
        report = make_planner(parts).handle("x and y")
        assert "\n✗ boom" in report
        automation.navigate_to_url.assert_called_once()

    def test_wait_step(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. open firefox\n2. wait 2 seconds"
        report = make_planner(parts).handle("open firefox then wait")
        assert "\n✓ Waited" in report
        assert waits == [("wait 2 seconds", 1.5), ("wait 2 seconds", 2.0)]

    def test_generic_step_reenters_router(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. What is the weather"
        report = make_planner(parts).handle("x and y")
        router.route.assert_called_once_with("what is the weather")
        assert "\n✓ routed" in report

    def test_multi_part_step_is_routed(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. google cats and dogs"
        report = make_planner(parts).handle("x and y")
        router.route.assert_called_once_with("google cats and dogs")
        assert "\n✓ routed" in report

    def test_nesting_depth_is_bounded(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. google cats and dogs"
        planner = make_planner(parts)
        router.route.side_effect = planner.handle
        report = planner.handle("x and y")
        # top-level plan, one nested plan, then the third level is refused
        assert ai.process_query.call_count == 2
        assert router.route.call_count == 2
        assert "✗ Nested multi-step command skipped: google cats and dogs" in report
        assert report.endswith("✅ All actions completed!")

    def test_depth_resets_after_refusal(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. google cats and dogs"
        planner = make_planner(parts)
        router.route.side_effect = planner.handle
        planner.handle("x and y")
        router.route.side_effect = None
        ai.process_query.return_value = EXAMPLE
        assert planner.handle("open whatsapp web in firefox").endswith("✅ All actions completed!")

    def test_switch_and_click_steps(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. Switch to Mozilla Firefox\n2. Click at 640, 360\n3. click at the button"
        automation.switch_to_window.return_value = "Switched to: Mozilla Firefox"
        automation.click_at.return_value = "Clicked at position: 640, 360"
        report = make_planner(parts).handle("x and y")
        automation.switch_to_window.assert_called_once_with("Mozilla Firefox")
        automation.click_at.assert_called_once_with(640, 360)
        assert "\n✗ No coordinates in click step: click at the button" in report

    def test_hook_can_stop_plan(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. open firefox\n2. go to a.com\n3. type hi"
        planner = make_planner(parts, wait_until_ready=lambda step, timeout: False)
        report = planner.handle("open firefox and type hi")
        assert report.endswith("⏹️ Plan cancelled after 1 of 3 step(s).")
        automation.navigate_to_url.assert_not_called()

    def test_cancel_event_with_default_hook(self, parts):
        ai, router, system, automation, waits, ready = parts
        cancel = threading.Event()
        system.open_application.side_effect = lambda name: cancel.set() or "Opening Firefox"
        planner = ComplexCommandPlanner(PlannerConfig(step_delay=0.01), ai, router, system, automation,
                                        cancel=cancel, record=False)
        report = planner.handle("open whatsapp web in firefox")
        system.open_application.assert_called_once()
        automation.navigate_to_url.assert_not_called()
        assert "Plan cancelled after 1 of 2" in report

    def test_cancel_does_not_leak_into_next_plan(self, parts):
        ai, router, system, automation, waits, ready = parts
        cancel = threading.Event()
        planner = ComplexCommandPlanner(PlannerConfig(step_delay=0.01, wait_seconds=0.01), ai, router,
                                        system, automation, cancel=cancel, record=False)
        cancel.set()
        ai.process_query.return_value = "1. open firefox\n2. go to a.com\n3. wait 1 second"
        report = planner.handle("open firefox and go to a.com")
        assert "\n✓ Waited" in report
        assert report.endswith("✅ All actions completed!")
        assert not cancel.is_set()

    def test_warnings_in_report(self, parts):
        ai, router, system, automation, waits, ready = parts
        ai.process_query.return_value = "1. open firefox\n2."
        report = make_planner(parts).handle("open firefox and more")
        assert "\n⚠️ line 2: empty step skipped" in report

    def test_context_log_records_plan(self, parts):
        ai, router, system, automation, waits, ready = parts
        system.open_application.return_value = "Failed to launch"
        make_planner(parts, record=True).handle("open whatsapp web in firefox")
        log = context_log.read_log()
        entry = log["history"][-1]
        assert entry["utterance"] == "open whatsapp web in firefox"
        assert entry["plan"] == ["Open Firefox browser", "Navigate to web.whatsapp.com"]
        assert log["last_errors"][-1]["error"] == "Open Firefox browser: Failed to launch"
