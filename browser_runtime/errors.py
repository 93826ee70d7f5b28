"""Error hierarchy for the browser automation node."""

from __future__ import annotations

from typing import Optional


class BrowserNodeError(Exception):
    """Base class for every error raised by the node.

    ``description`` says what the node was doing when it failed, and
    ``item_index`` is set for failures tied to one input item.
    """

    def __init__(
        self,
        message: str,
        *,
        description: Optional[str] = None,
        item_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.description = description
        self.item_index = item_index

    def __str__(self) -> str:
        return self.message


# Session lifecycle. These are fatal for the whole invocation.


class SessionStartFailure(BrowserNodeError):
    """The browser manager refused or failed a ``start`` request."""


class SessionStopFailure(BrowserNodeError):
    """The browser manager refused or failed a ``stop`` request."""


class NoSessionToStop(BrowserNodeError):
    """Neither an ambient session nor fallback stop parameters exist."""


class IncompleteManualOverride(BrowserNodeError):
    """Manual override is missing the endpoint or the page id."""


class ConnectFailure(BrowserNodeError):
    """Could not attach to a remote browser endpoint."""


class LaunchFailure(BrowserNodeError):
    """Could not launch a temporary browser."""


class UnknownOperation(BrowserNodeError):
    """The configured operation is not one the node understands."""


# Per-item failures.


class InvalidURL(BrowserNodeError):
    """The navigation URL cannot be parsed."""


class PageNotFound(BrowserNodeError):
    """No live page matches the persistent session's page id."""


class RenderOptionsInvalid(BrowserNodeError):
    """Screenshot or PDF options are contradictory or incomplete."""


class InvalidScriptReturn(BrowserNodeError):
    """A user script returned something other than a list of records."""


class ActionFailure(BrowserNodeError):
    """Navigation, capture or script runtime failed."""


class ScriptRejected(ActionFailure):
    """A user script uses a construct the sandbox does not allow."""


class ScriptExecutionError(ActionFailure):
    """A user script raised while running."""
