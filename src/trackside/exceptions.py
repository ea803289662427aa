"""Custom exception hierarchy for trackside."""

from __future__ import annotations


class TracksideError(Exception):
    """Base exception for all trackside errors."""


class TracksideConfigError(TracksideError):
    """Invalid or missing configuration."""


class LinkError(TracksideError):
    """Failure on a physical sensor link."""

    def __init__(self, message: str, *, link_id: str = "") -> None:
        self.link_id = link_id
        super().__init__(message)


class LinkUnavailableError(LinkError):
    """The link could not be opened.

    Non-fatal: the link stays closed and is not retried automatically.
    Whoever owns the process decides on a reconnect policy.
    """


class LinkIOError(LinkError):
    """A read failed on a link that was opened successfully."""


class ParseError(TracksideError):
    """A raw link line could not be decoded into a typed reading."""

    def __init__(self, message: str, *, link_id: str = "", line: str = "") -> None:
        self.link_id = link_id
        self.line = line
        super().__init__(message)


class ViewerSendError(TracksideError):
    """Pushing a snapshot to a viewer failed.

    Only the affected viewer is torn down.
    """

    def __init__(self, message: str, *, viewer_id: str = "") -> None:
        self.viewer_id = viewer_id
        super().__init__(message)
