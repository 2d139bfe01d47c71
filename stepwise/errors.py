from __future__ import annotations


class StepwiseError(RuntimeError):
    """Base class for errors surfaced to the learner as a single message."""


class NoInput(StepwiseError):
    """Neither homework text nor an image was provided."""


class CollaboratorFailure(StepwiseError):
    """A generation/evaluation request failed or returned a non-success result."""


class MalformedContent(StepwiseError):
    """A collaborator response does not have the expected shape."""


class InvalidTransition(ValueError):
    """An event was fired in a screen that does not accept it."""
