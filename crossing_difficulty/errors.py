"""Exceptions raised by the crossing difficulty pipeline."""

from __future__ import annotations


class CrossingPipelineError(RuntimeError):
    """Base class for fatal pipeline failures."""


class StagePreconditionError(CrossingPipelineError):
    """A stage was started without the complete output of an earlier stage."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
