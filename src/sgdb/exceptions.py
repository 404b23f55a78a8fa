"""Errors raised while bootstrapping the schema."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sgdb.migrations import Step


class SchemaInitError(Exception):
    """The schema could not be brought to the baseline."""


class SchemaStepError(SchemaInitError):
    """A single statement failed. Carries the database's error text verbatim."""

    def __init__(self, step: Step, original: BaseException) -> None:
        self.step = step
        self.original = original
        detail = getattr(original, "orig", None) or original
        super().__init__(f"{step.name}: {detail}")
