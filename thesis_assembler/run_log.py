from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from . import config


@dataclass
class WarningEntry:
    rule: str
    reason: str
    chapter: str | None = None
    token: str | None = None
    order: int | None = None

    def describe(self) -> str:
        parts = [f"rule={self.rule}", f"reason={self.reason}"]
        if self.chapter:
            parts.append(f"chapter={self.chapter}")
        if self.token:
            parts.append(f"token={self.token}")
        if self.order is not None:
            parts.append(f"order={self.order}")
        return " ".join(parts)


@dataclass
class RunLogState:
    template_path: str
    start_time: datetime = field(default_factory=datetime.now)
    command: str = "assemble"
    warnings: list[WarningEntry] = field(default_factory=list)
    heading_style_sources: dict[int, str] = field(default_factory=dict)
    section_count: int = 0
    block_count: int = 0
    deleted_count: int = 0
    inserted_count: int = 0
    reference_count: int = 0
    error: str | None = None
    elapsed_sec: float | None = None


def warn(
    log_state: RunLogState | None,
    rule: str,
    reason: str,
    chapter: str | None = None,
    token: str | None = None,
    order: int | None = None,
) -> None:
    if log_state is None:
        return
    log_state.warnings.append(
        WarningEntry(rule=rule, reason=reason, chapter=chapter, token=token, order=order)
    )


def write_log(log_state: RunLogState) -> Path:
    config.ensure_base_dirs()
    log_path = config.build_log_path(log_state.start_time)
    lines = [
        f"command: {log_state.command}",
        f"template_path: {log_state.template_path}",
        f"elapsed_sec: {log_state.elapsed_sec:.3f}"
        if log_state.elapsed_sec is not None
        else "elapsed_sec: unknown",
        f"sections_count: {log_state.section_count}",
        f"blocks_count: {log_state.block_count}",
    ]
    for level, source in sorted(log_state.heading_style_sources.items()):
        lines.append(f"heading_style_source[{level}]: {source}")
    if log_state.command == "assemble":
        lines.append(f"deleted_count: {log_state.deleted_count}")
        lines.append(f"inserted_count: {log_state.inserted_count}")
        lines.append(f"references_count: {log_state.reference_count}")
    if log_state.error:
        lines.append(f"error: {log_state.error}")
    lines.append(f"warnings_count: {len(log_state.warnings)}")
    for warning in log_state.warnings:
        lines.append("warning: " + warning.describe())
    log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return log_path
