"""Colored operator console built on click styling."""

from __future__ import annotations

import sys

import rich_click as click


class Console:
    """Writes progress lines and raw assistant text to the terminal."""

    def __init__(self, *, color: bool | None = None) -> None:
        self.color = color

    def line(self, text: str = "") -> None:
        click.echo(text, color=self.color)

    def bold(self, text: str) -> None:
        click.secho(text, bold=True, color=self.color)

    def info(self, text: str) -> None:
        click.secho(text, fg="cyan", color=self.color)

    def success(self, text: str) -> None:
        click.secho(text, fg="green", color=self.color)

    def warning(self, text: str) -> None:
        click.secho(text, fg="yellow", color=self.color)

    def error(self, text: str) -> None:
        click.secho(text, fg="red", err=True, color=self.color)

    def write(self, text: str) -> int:
        click.echo(text, nl=False, color=self.color)
        return len(text)


class ErrorStream:
    """Raw text sink for the assistant's stderr."""

    def write(self, text: str) -> int:
        sys.stderr.write(text)
        sys.stderr.flush()
        return len(text)
