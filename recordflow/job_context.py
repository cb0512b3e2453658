# ==============================================
# JobContext
# ==============================================
#
# PURPOSE:
#   The operator-facing side of a run. Components never print or ask
#   questions directly; they go through a JobContext so the same fetch
#   can run in a terminal or headless (batch jobs, tests).
#
# CLASSES:
# --------
# - ParameterOption / Parameter (dataclasses)
#     A question to ask the operator, with the allowed answers.
#
# - JobContext (abstract)
#     print(level, message)             → operator output
#     prompt(parameters) -> dict        → ask questions (async)
#     update_state(resource_status)     → PLANNING_OPERATIONS, READING_STREAM, ...
#     report_progress(stream_status)    → throughput / ETA
#     finish(message, record_count, outcome)
#
# - ConsoleJobContext
#     Prints with the usual markers: ✓ success, ⚠ warning, ✗ error,
#     ⟳ progress. Prompts read a numbered choice from stdin.
#
# - HeadlessJobContext
#     Answers prompts from a preset dict and records everything it is
#     told, for batch runs and tests.
#
# ==============================================

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from recordflow.errors import SchemaConflictError


LEVEL_MARKERS = {
    "SUCCESS": "✓",
    "INFO": " ",
    "WARN": "⚠",
    "ERROR": "✗",
    "PROGRESS": "⟳",
}


@dataclass
class ParameterOption:
    title: str
    value: Any


@dataclass
class Parameter:
    """One question for the operator."""
    name: str
    message: str
    options: List[ParameterOption] = field(default_factory=list)
    default: Any = None


class JobContext(ABC):
    """Operator output and prompting for one job."""

    @abstractmethod
    def print(self, level: str, message: str) -> None:
        ...

    @abstractmethod
    async def prompt(self, parameters: List[Parameter]) -> Dict[str, Any]:
        """
        Ask the operator one or more questions.

        Returns:
            Mapping of parameter name -> chosen option value
        """

    def update_state(self, resource_status) -> None:
        pass

    def report_progress(self, stream_status) -> None:
        pass

    def finish(self, message: str, record_count: int, outcome) -> None:
        pass


class ConsoleJobContext(JobContext):
    """JobContext for a terminal session."""

    def __init__(self, interactive: bool = True, show_progress: bool = True):
        self.interactive = interactive
        self.show_progress = show_progress
        self._last_status: Optional[str] = None

    def print(self, level: str, message: str) -> None:
        marker = LEVEL_MARKERS.get(level.upper(), " ")
        print(f"{marker} {message}")

    async def prompt(self, parameters: List[Parameter]) -> Dict[str, Any]:
        answers: Dict[str, Any] = {}
        for parameter in parameters:
            if not self.interactive:
                if parameter.default is None:
                    raise SchemaConflictError(
                        f"No answer for '{parameter.name}' in non-interactive mode: {parameter.message}"
                    )
                answers[parameter.name] = parameter.default
                continue
            answers[parameter.name] = await asyncio.to_thread(self._ask, parameter)
        return answers

    def _ask(self, parameter: Parameter) -> Any:
        print(f"? {parameter.message}")
        for index, option in enumerate(parameter.options, start=1):
            print(f"  {index}. {option.title}")
        while True:
            raw = input("> ").strip()
            if not raw and parameter.default is not None:
                return parameter.default
            if raw.isdigit() and 1 <= int(raw) <= len(parameter.options):
                return parameter.options[int(raw) - 1].value
            print(f"⚠ Enter a number between 1 and {len(parameter.options)}")

    def update_state(self, resource_status) -> None:
        status = resource_status.status.value
        if status != self._last_status:
            print(f"⟳ {resource_status.name}: {status}")
            self._last_status = status

    def report_progress(self, stream_status) -> None:
        if not self.show_progress:
            return
        percent = stream_status.percent_complete
        percent_text = f"{percent:.1f}%" if percent is not None else "?"
        print(
            f"⟳ {stream_status.records_received} records received, "
            f"{stream_status.records_committed} written "
            f"({percent_text}, {stream_status.records_per_second:.1f} rec/s)"
        )

    def finish(self, message: str, record_count: int, outcome) -> None:
        marker = {"SUCCESS": "✓", "WARNING": "⚠"}.get(outcome.name, "✗")
        print(f"{marker} {message} ({record_count} records)")


class HeadlessJobContext(JobContext):
    """JobContext that never blocks on a human."""

    def __init__(self, answers: Optional[Dict[str, Any]] = None):
        self.answers = answers or {}
        self.messages: List[tuple] = []
        self.states: list = []
        self.progress: list = []
        self.prompts: List[Parameter] = []
        self.finished: Optional[tuple] = None

    def print(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    async def prompt(self, parameters: List[Parameter]) -> Dict[str, Any]:
        answers = {}
        for parameter in parameters:
            self.prompts.append(parameter)
            if parameter.name in self.answers:
                answers[parameter.name] = self.answers[parameter.name]
            elif parameter.default is not None:
                answers[parameter.name] = parameter.default
            else:
                raise SchemaConflictError(
                    f"No answer for '{parameter.name}': {parameter.message}"
                )
        return answers

    def update_state(self, resource_status) -> None:
        self.states.append(resource_status)

    def report_progress(self, stream_status) -> None:
        self.progress.append(stream_status)

    def finish(self, message: str, record_count: int, outcome) -> None:
        self.finished = (message, record_count, outcome)
