from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from colorama import Fore, Style, init

from api_method_framework.suite import StepResult

_RULE = "=" * 48


@dataclass
class ReportEntry:
    phase: str
    name: str
    passed: bool
    message: str
    status_code: int | None = None
    latency_ms: float | None = None

    @property
    def exchange(self) -> str:
        """``HTTP 201, latency=3.2ms`` for steps that reached the transport."""
        details = []
        if self.status_code is not None:
            details.append(f"HTTP {self.status_code or 'ERR'}")
        if self.latency_ms is not None:
            details.append(f"latency={self.latency_ms:.1f}ms")
        return ", ".join(details)


class Reporter:
    """Collects suite step outcomes and renders the PASS/FAIL report."""

    def __init__(self, use_color: bool = True) -> None:
        init(autoreset=True)
        self.use_color = use_color
        self.entries: List[ReportEntry] = []

    def add_step(self, result: StepResult) -> None:
        self.entries.append(
            ReportEntry(
                phase=f"step {result.index}",
                name=result.method,
                passed=result.passed,
                message=result.message,
                status_code=result.status_code,
                latency_ms=result.latency_ms,
            )
        )

    def add_custom(self, phase: str, name: str, passed: bool, message: str) -> None:
        self.entries.append(ReportEntry(phase=phase, name=name, passed=passed, message=message))

    @property
    def has_failures(self) -> bool:
        return any(not entry.passed for entry in self.entries)

    @property
    def failed(self) -> List[ReportEntry]:
        return [entry for entry in self.entries if not entry.passed]

    def render(self) -> str:
        lines = [f"{' API METHOD SUITE REPORT ':=^48}"]
        lines.extend(self._render_entry(entry) for entry in self.entries)
        lines.append(_RULE)

        failed = self.failed
        lines.append(
            f"Summary: passed={len(self.entries) - len(failed)}, failed={len(failed)}, total={len(self.entries)}"
        )
        latencies = [entry.latency_ms for entry in self.entries if entry.latency_ms is not None]
        if latencies:
            lines.append(f"Transport time: {sum(latencies):.1f}ms over {len(latencies)} call(s)")
        if failed:
            lines.append("Failed: " + ", ".join(f"{entry.phase} ({entry.name})" for entry in failed))
        return "\n".join(lines)

    def _render_entry(self, entry: ReportEntry) -> str:
        marker = "[PASS]" if entry.passed else "[FAIL]"
        if self.use_color:
            color = Fore.GREEN if entry.passed else Fore.RED
            marker = f"{color}{marker}{Style.RESET_ALL}"
        parts = [f"{marker} {entry.phase}: {entry.name}"]
        if entry.exchange:
            parts.append(entry.exchange)
        parts.append(entry.message)
        return " - ".join(parts)

    def print(self) -> None:
        print(self.render())

    def write(self, path: str | Path) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render() + "\n", encoding="utf-8")
