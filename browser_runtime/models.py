"""Shared models for the browser automation runtime."""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

MANUAL_OVERRIDE_SESSION_ID = "manual-override"


class Operation(str, Enum):
    """Operations the node can run."""

    START_PERSISTENT = "startPersistentBrowser"
    STOP_PERSISTENT = "stopPersistentBrowser"
    RUN_SCRIPT = "runCustomScript"
    GET_CONTENT = "getPageContent"
    GET_PDF = "getPDF"
    GET_SCREENSHOT = "getScreenshot"

    @classmethod
    def parse(cls, value: Any) -> Optional["Operation"]:
        """Return the operation for a value or alias, ``None`` when unknown."""
        if isinstance(value, Operation):
            return value
        raw = str(value or "").strip()
        for op in cls:
            if raw == op.value:
                return op
        return _OPERATION_ALIASES.get(raw.lower())


_OPERATION_ALIASES = {
    "start-persistent": Operation.START_PERSISTENT,
    "stop-persistent": Operation.STOP_PERSISTENT,
    "run-script": Operation.RUN_SCRIPT,
    "get-content": Operation.GET_CONTENT,
    "get-pdf": Operation.GET_PDF,
    "get-screenshot": Operation.GET_SCREENSHOT,
}


@dataclass(frozen=True)
class SessionDescriptor:
    """A live remote browser and page that this invocation does not own."""

    ws_endpoint: str
    page_id: str
    session_id: str
    browser_manager_url: str = ""

    @property
    def is_manual_override(self) -> bool:
        return self.session_id == MANUAL_OVERRIDE_SESSION_ID

    def to_json(self) -> Dict[str, str]:
        return {
            "wsEndpoint": self.ws_endpoint,
            "pageId": self.page_id,
            "sessionId": self.session_id,
            "browserManagerUrl": self.browser_manager_url,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "SessionDescriptor":
        return cls(
            ws_endpoint=str(payload.get("wsEndpoint") or ""),
            page_id=str(payload.get("pageId") or ""),
            session_id=str(payload.get("sessionId") or ""),
            browser_manager_url=str(payload.get("browserManagerUrl") or ""),
        )


@dataclass(frozen=True)
class BinaryPayload:
    """Named binary output, base64 encoded."""

    data: str
    mime_type: str
    file_name: Optional[str] = None
    file_extension: Optional[str] = None
    file_size: int = 0

    @classmethod
    def from_bytes(
        cls,
        raw: bytes,
        mime_type: str,
        file_name: Optional[str] = None,
    ) -> "BinaryPayload":
        extension = None
        if file_name and "." in file_name:
            extension = file_name.rsplit(".", 1)[-1].lower()
        else:
            guessed = mimetypes.guess_extension(mime_type) or ""
            extension = guessed.lstrip(".") or mime_type.rsplit("/", 1)[-1]
        return cls(
            data=base64.b64encode(bytes(raw)).decode("ascii"),
            mime_type=mime_type,
            file_name=file_name,
            file_extension=extension,
            file_size=len(raw),
        )

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "data": self.data,
            "mimeType": self.mime_type,
            "fileSize": self.file_size,
        }
        if self.file_name:
            payload["fileName"] = self.file_name
        if self.file_extension:
            payload["fileExtension"] = self.file_extension
        return payload


@dataclass
class ItemResult:
    """One item flowing between workflow steps."""

    json: Dict[str, Any] = field(default_factory=dict)
    binary: Dict[str, BinaryPayload] = field(default_factory=dict)
    paired_item: Optional[int] = None

    def with_page_id(self, page_id: str) -> "ItemResult":
        return replace(self, json={**self.json, "pageId": page_id})

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"json": dict(self.json)}
        if self.binary:
            payload["binary"] = {name: b.to_json() for name, b in self.binary.items()}
        if self.paired_item is not None:
            payload["pairedItem"] = {"item": self.paired_item}
        return payload


@dataclass(frozen=True)
class ManualOverride:
    """User-supplied connection details that bypass the ambient session."""

    requested: bool = False
    ws_endpoint: str = ""
    page_id: str = ""


@dataclass(frozen=True)
class LaunchOptions:
    """Temporary-browser options as configured by the user."""

    executable_path: Optional[str] = None
    launch_arguments: Tuple[str, ...] = ()
    add_container_args: Optional[bool] = None
    headless: Optional[bool] = None
