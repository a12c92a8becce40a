"""Game-level exceptions raised by the turn machine and its collaborators."""

from __future__ import annotations


class GameError(Exception):
    """Base class for every recoverable game failure."""


class GenerationError(GameError):
    """An event or image could not be generated, or the output was malformed."""


class BaseImageError(GameError):
    """The static base image for a civilization could not be loaded."""


class TransitionError(GameError):
    """An action was dispatched in a phase that does not accept it."""


class BusyError(GameError):
    """A turn transition is already in flight."""
