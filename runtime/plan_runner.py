from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from config import PlannerConfig
from local_agent import context_log

logger = logging.getLogger(__name__)

NUMBERING_RE = re.compile(r"^\d+\.\s*")

# Actuator replies that mean the step did not happen
FAILURE_PREFIXES = ("Failed to ", "I couldn't ", "I don't know how to")

OPEN, NAVIGATE, TYPE, PRESS, SEARCH, SWITCH, CLICK, WAIT, GENERIC = (
    "open", "navigate", "type", "press", "search", "switch", "click", "wait", "generic")

# A top-level plan plus one plan started from a routed step
MAX_PLAN_DEPTH = 2

# Prefix dispatch, first match wins; "wait" is a containment test handled separately
STEP_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("open ", OPEN),
    ("navigate to ", NAVIGATE),
    ("go to ", NAVIGATE),
    ("type ", TYPE),
    ("press ", PRESS),
    ("search for ", SEARCH),
    ("switch to ", SWITCH),
    ("click at ", CLICK),
)


class PlanStepError(RuntimeError):
    pass


@dataclass(frozen=True)
class ActionStep:
    kind: str
    payload: str
    text: str


@dataclass
class Plan:
    steps: List[ActionStep] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def texts(self) -> List[str]:
        return [s.text for s in self.steps]


def build_prompt(utterance: str) -> str:
    return (
        f"You are I.R.I.S, an AI assistant. Break down this command into simple steps: '{utterance}'. "
        "Provide a numbered list of actions. "
        "Format each action as a simple command. "
        "Example for 'open whatsapp web in firefox':\n"
        "1. Open Firefox browser\n"
        "2. Navigate to web.whatsapp.com\n"
        "Keep it concise and actionable."
    )


def classify_step(text: str) -> ActionStep:
    lowered = text.lower().strip()
    for prefix, kind in STEP_PREFIXES:
        if lowered.startswith(prefix):
            return ActionStep(kind, lowered[len(prefix):].strip(), text)
    if "wait" in lowered:
        return ActionStep(WAIT, "", text)
    return ActionStep(GENERIC, lowered, text)


def parse_plan(response: str, max_steps: int = 20) -> Plan:
    """
    Turn a model reply into ordered steps.

    A line is ``[<digits>.]<spaces><free text>``. Blank lines and ``#``
    comments are ignored; a line with nothing left after its number, and
    every line past ``max_steps``, is skipped with a warning.
    """
    plan = Plan()
    for lineno, raw in enumerate((response or "").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        text = NUMBERING_RE.sub("", line).strip()
        if not text:
            plan.warnings.append(f"line {lineno}: empty step skipped")
            continue
        if text.startswith("#"):
            continue
        if len(plan.steps) >= max_steps:
            plan.warnings.append(f"line {lineno}: step limit ({max_steps}) reached, dropped '{text}'")
            continue
        plan.steps.append(classify_step(text))
    return plan


class ComplexCommandPlanner:
    """
    Asks the AI for a numbered decomposition and runs it step by step.

    Steps run on the calling thread. Between steps the planner calls
    ``wait_until_ready(step, timeout)``, which returns False to stop the
    plan; the default waits ``step_delay`` seconds on the ``cancel`` event.
    The event is cleared when a top-level plan starts.

    Generic steps go back through the router, so a step can start one
    nested plan; deeper nesting is refused with :class:`PlanStepError`.
    """

    def __init__(
        self,
        config: Optional[PlannerConfig],
        ai: Any,
        router: Any,
        system: Any,
        automation: Any,
        *,
        wait_until_ready: Optional[Callable[[ActionStep, float], bool]] = None,
        cancel: Optional[threading.Event] = None,
        record: bool = True,
    ):
        self.config = config or PlannerConfig()
        self.ai = ai
        self.router = router
        self.system = system
        self.automation = automation
        self.cancel = cancel or threading.Event()
        self.wait_until_ready = wait_until_ready or self._wait_on_cancel
        self.record = record
        self._local = threading.local()

    def _wait_on_cancel(self, step: ActionStep, timeout: float) -> bool:
        return not self.cancel.wait(timeout)

    def handle(self, utterance: str) -> str:
        depth = getattr(self._local, "depth", 0)
        if depth >= MAX_PLAN_DEPTH:
            raise PlanStepError(f"Nested multi-step command skipped: {utterance}")
        if depth == 0:
            self.cancel.clear()
        self._local.depth = depth + 1
        try:
            return self._handle(utterance)
        finally:
            self._local.depth = depth

    def _handle(self, utterance: str) -> str:
        response = self.ai.process_query(build_prompt(utterance))
        plan = parse_plan(response, self.config.max_steps)
        logger.info(f"Planned {len(plan.steps)} step(s) for {utterance!r}")
        for w in plan.warnings:
            logger.warning(f"Plan: {w}")

        report = f"📋 PLANNED ACTIONS:\n\n{response}\n\n⚡ Executing actions...\n"
        lines, completed = self.execute(plan)
        report += "".join(lines)
        for w in plan.warnings:
            report += f"\n⚠️ {w}"
        if completed < len(plan.steps):
            report += f"\n\n⏹️ Plan cancelled after {completed} of {len(plan.steps)} step(s)."
        else:
            report += "\n\n✅ All actions completed!"

        if self.record:
            context_log.append_action(utterance, plan.texts, lines)
        return report

    def execute(self, plan: Plan) -> Tuple[List[str], int]:
        """Run every step in order. Returns the report lines and how many steps ran."""
        lines: List[str] = []
        completed = 0
        for i, step in enumerate(plan.steps):
            if i > 0 and not self.wait_until_ready(step, self.config.step_delay):
                logger.info(f"Plan cancelled before step {i + 1}: {step.text!r}")
                break
            try:
                result = self.run_step(step)
                lines.append(f"\n✓ {result}")
            except Exception as e:
                logger.warning(f"Step {i + 1} failed: {e}")
                lines.append(f"\n✗ {e}")
                if self.record:
                    context_log.append_error(f"{step.text}: {e}")
            completed += 1
        return lines, completed

    def run_step(self, step: ActionStep) -> str:
        if step.kind == OPEN:
            result = self.system.open_application(step.payload)
        elif step.kind == NAVIGATE:
            result = self.automation.navigate_to_url(step.payload)
        elif step.kind == TYPE:
            result = self.automation.type_text(step.payload)
        elif step.kind == PRESS:
            result = self.automation.press_key(step.payload)
        elif step.kind == SEARCH:
            result = self.automation.search_in_browser(step.payload)
        elif step.kind == SWITCH:
            result = self.automation.switch_to_window(step.text.strip()[len("switch to "):].strip())
        elif step.kind == CLICK:
            coords = re.findall(r"\d+", step.payload)
            if len(coords) < 2:
                raise PlanStepError(f"No coordinates in click step: {step.text}")
            result = self.automation.click_at(int(coords[0]), int(coords[1]))
        elif step.kind == WAIT:
            if not self.wait_until_ready(step, self.config.wait_seconds):
                raise PlanStepError("Wait interrupted")
            return "Waited"
        else:
            result = self.router.route(step.payload)
        if result.startswith(FAILURE_PREFIXES):
            raise PlanStepError(result)
        return result
