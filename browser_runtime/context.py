"""Invocation and workflow-scoped state passed through the node."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, MutableMapping, Optional

from .models import ItemResult, SessionDescriptor

SESSION_SLOT = "browserSession"


class SessionContext:
    """Workflow-scoped holder for the ambient persistent session.

    Backed by a mutable mapping owned by the workflow (its static data), so
    one descriptor survives across separate invocations of the same
    workflow. At most one descriptor lives in the slot at a time.
    """

    def __init__(self, store: Optional[MutableMapping[str, Any]] = None):
        self._store: MutableMapping[str, Any] = store if store is not None else {}

    @property
    def current(self) -> Optional[SessionDescriptor]:
        raw = self._store.get(SESSION_SLOT)
        if isinstance(raw, SessionDescriptor):
            return raw
        if isinstance(raw, dict) and raw.get("wsEndpoint"):
            return SessionDescriptor.from_json(raw)
        return None

    def set(self, descriptor: SessionDescriptor) -> None:
        self._store[SESSION_SLOT] = descriptor.to_json()

    def clear(self) -> None:
        self._store.pop(SESSION_SLOT, None)


@dataclass
class InvocationContext:
    """Everything the workflow engine hands to one node invocation."""

    items: List[ItemResult] = field(default_factory=lambda: [ItemResult()])
    session_context: SessionContext = field(default_factory=SessionContext)
    execution_id: str = ""
    mode: str = "trigger"
    continue_on_fail: bool = False
    send_message_to_ui: Optional[Callable[..., Any]] = None

    @property
    def is_manual(self) -> bool:
        return self.mode == "manual"
