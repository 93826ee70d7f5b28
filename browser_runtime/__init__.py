"""Browser runtime package for the browser automation node."""

from .context import InvocationContext, SessionContext
from .event_logger import NodeEventLogger
from .models import BinaryPayload, ItemResult, Operation, SessionDescriptor
from .page_actions import PageActionsFeature
from .parameters import NodeParameters
from .remote_sessions import RemoteSessionClient
from .script_sandbox import ScriptSandbox
from .session import BrowserSessionManager

__all__ = [
    "BinaryPayload",
    "BrowserSessionManager",
    "InvocationContext",
    "ItemResult",
    "NodeEventLogger",
    "NodeParameters",
    "Operation",
    "PageActionsFeature",
    "RemoteSessionClient",
    "ScriptSandbox",
    "SessionContext",
    "SessionDescriptor",
]
