"""
renderer.py

Responsibility: Render the book once per output target through the external R toolchain.

Rules:
- Targets run in the configured order (web book, PDF, EPUB by default).
- The first failing target aborts the run; later targets are never attempted.
- The rendering itself belongs to rmarkdown/bookdown. This module only invokes it.

This module intentionally does NOT know about git, GitHub, or CLI parsing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from bookpress.config import RENDER_EXPRESSION, ConfigError, Settings, render_text
from bookpress.process import CommandRunner, SubprocessRunner, run_checked

logger = logging.getLogger("bookpress.renderer")


@dataclass(frozen=True)
class RenderResult:
    targets: tuple[str, ...]
    output_dir: Path


def select_targets(settings: Settings, requested: Iterable[str] | None = None) -> tuple[str, ...]:
    """
    Return the targets to render, always in configured order.

    `requested` restricts the run to a subset; unknown names are rejected up front.
    """
    if requested is None:
        return settings.targets
    wanted = set(requested)
    unknown = sorted(wanted - set(settings.targets))
    if unknown:
        raise ConfigError(f"Unknown render target(s): {', '.join(unknown)}")
    return tuple(t for t in settings.targets if t in wanted)


def render_command(settings: Settings, target: str) -> list[str]:
    expression = render_text(RENDER_EXPRESSION, target=target, encoding=settings.encoding)
    return [settings.rscript, "-e", expression]


def render_book(
    settings: Settings,
    *,
    runner: CommandRunner | None = None,
    targets: Iterable[str] | None = None,
) -> RenderResult:
    runner = runner or SubprocessRunner()
    selected = select_targets(settings, targets)

    for target in selected:
        logger.info("Rendering %s", target)
        run_checked(runner, render_command(settings, target), cwd=settings.root)

    return RenderResult(targets=selected, output_dir=settings.output_path)
