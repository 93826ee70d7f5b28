"""Raw node parameters and the typed records built from them."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from .environment import default_add_container_args
from .errors import UnknownOperation
from .models import LaunchOptions, ManualOverride, Operation

DEFAULT_BROWSER_MANAGER_URL = "http://127.0.0.1:3001"
DEFAULT_SESSION_ID_TEMPLATE = "browser-session-{execution_id}"
DEFAULT_DATA_PROPERTY = "data"
TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


class NodeParameters:
    """Read node parameters the way the workflow engine resolves them.

    A parameter value may be a callable taking the item index; it is
    evaluated per item, which is how per-item expressions reach the node.
    """

    def __init__(self, raw: Optional[Mapping[str, Any]] = None):
        self.raw: Dict[str, Any] = dict(raw or {})

    def get(self, name: str, item_index: int = 0, default: Any = None) -> Any:
        value = self.raw.get(name, default)
        if callable(value):
            value = value(item_index)
        return default if value is None else value

    def get_str(self, name: str, item_index: int = 0, default: str = "") -> str:
        return str(self.get(name, item_index, default) or "").strip()

    def get_bool(self, name: str, item_index: int = 0, default: bool = False) -> bool:
        value = self.get(name, item_index, default)
        if isinstance(value, str):
            return value.strip().lower() in TRUE_STRINGS
        return bool(value)

    def options(self, item_index: int = 0) -> Dict[str, Any]:
        options = self.get("options", item_index, {})
        return dict(options) if isinstance(options, Mapping) else {}

    def operation(self) -> Operation:
        raw = self.get("operation", 0, Operation.RUN_SCRIPT.value)
        operation = Operation.parse(raw)
        if operation is None:
            raise UnknownOperation(f"The operation '{raw}' is not supported.")
        return operation

    def session_id(self, execution_id: str = "") -> str:
        template = self.get_str("session_id", 0, DEFAULT_SESSION_ID_TEMPLATE)
        return template.replace("{execution_id}", str(execution_id or ""))

    def browser_manager_url(self) -> str:
        return self.get_str("browser_manager_url", 0, DEFAULT_BROWSER_MANAGER_URL)

    def stop_fallback(self) -> Tuple[str, str]:
        return (
            self.get_str("stop_session_id", 0, ""),
            self.get_str("stop_browser_manager_url", 0, DEFAULT_BROWSER_MANAGER_URL),
        )

    def query_parameters(self, item_index: int) -> List[Tuple[str, str]]:
        raw = self.get("query_parameters", item_index, [])
        if isinstance(raw, Mapping):
            raw = raw.get("parameters", [])
        pairs: List[Tuple[str, str]] = []
        for entry in raw or []:
            if not isinstance(entry, Mapping):
                continue
            name = str(entry.get("name") or "")
            if name:
                pairs.append((name, str(entry.get("value") or "")))
        return pairs

    def manual_override(self) -> ManualOverride:
        opts = self.options(0)
        endpoint = str(opts.get("manual_ws_endpoint") or "").strip()
        page_id = str(opts.get("manual_page_id") or "").strip()
        flag = opts.get("manual_session_override")
        if flag is None:
            requested = bool(endpoint or page_id)
        else:
            requested = bool(flag)
        return ManualOverride(requested=requested, ws_endpoint=endpoint, page_id=page_id)

    def launch_options(self) -> LaunchOptions:
        opts = self.options(0)
        raw_args = opts.get("launch_arguments") or []
        if isinstance(raw_args, Mapping):
            raw_args = raw_args.get("args", [])
        args: List[str] = []
        for entry in raw_args:
            arg = entry.get("arg") if isinstance(entry, Mapping) else entry
            arg = str(arg or "").strip()
            if arg:
                args.append(arg)

        add_container_args = opts.get("add_container_args")
        if add_container_args is None:
            add_container_args = default_add_container_args()

        headless = opts.get("headless")
        if isinstance(headless, str):
            headless = headless.strip().lower() in TRUE_STRINGS if headless.strip() else None
        return LaunchOptions(
            executable_path=str(opts.get("executable_path") or "").strip() or None,
            launch_arguments=tuple(args),
            add_container_args=bool(add_container_args),
            headless=None if headless is None else bool(headless),
        )

    def batch_size(self) -> int:
        try:
            return max(1, int(self.options(0).get("batch_size", 1) or 1))
        except (TypeError, ValueError):
            return 1
