"""Run user-supplied Python scripts against a closed set of capabilities."""

from __future__ import annotations

import ast
import asyncio
import copy
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .capabilities import BrowserCapabilities, PageCapabilities, capability_namespace, make_binary
from .errors import BrowserNodeError, InvalidScriptReturn, ScriptExecutionError, ScriptRejected
from .models import BinaryPayload, ItemResult

SCRIPT_FILENAME = "<browser-script>"
SCRIPT_FUNCTION = "__script__"
_SCRIPT_TEMPLATE = f"async def {SCRIPT_FUNCTION}():\n    pass\n"

# Attributes that reach interpreter internals without a leading underscore.
BLOCKED_ATTRIBUTES = frozenset(
    {
        "gi_frame",
        "gi_code",
        "gi_yieldfrom",
        "cr_frame",
        "cr_code",
        "cr_await",
        "ag_frame",
        "ag_code",
        "ag_await",
        "f_globals",
        "f_locals",
        "f_builtins",
        "f_back",
        "f_code",
        "tb_frame",
        "tb_next",
        "format",
        "format_map",
        "mro",
    }
)

SAFE_BUILTINS: Dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "range": range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "Exception": Exception,
    "ValueError": ValueError,
    "KeyError": KeyError,
    "TypeError": TypeError,
    "RuntimeError": RuntimeError,
}


@dataclass
class ScriptBindings:
    """What one script run may see: the page, the browser and item data."""

    page: Any
    browser: Any
    items: Sequence[ItemResult]
    item_index: int
    page_id: Optional[str] = None
    manual: bool = False
    send_message_to_ui: Optional[Callable[[str], Any]] = None


def validate_script(tree: ast.AST) -> None:
    """Reject constructs that could escape the capability surface."""
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ScriptRejected("Imports are not allowed in scripts.")
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise ScriptRejected("'global' and 'nonlocal' are not allowed in scripts.")
        if isinstance(node, ast.ClassDef):
            raise ScriptRejected("Class definitions are not allowed in scripts.")
        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise ScriptRejected(f"Name '{node.id}' is not allowed in scripts.")
        if isinstance(node, ast.Attribute) and (
            node.attr.startswith("_") or node.attr in BLOCKED_ATTRIBUTES
        ):
            raise ScriptRejected(f"Attribute '{node.attr}' is not allowed in scripts.")
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name.startswith("_"):
            raise ScriptRejected(f"Function name '{node.name}' is not allowed in scripts.")
        if isinstance(node, ast.arg) and node.arg.startswith("_"):
            raise ScriptRejected(f"Argument name '{node.arg}' is not allowed in scripts.")
        if isinstance(node, ast.keyword) and node.arg and node.arg.startswith("_"):
            raise ScriptRejected(f"Keyword '{node.arg}' is not allowed in scripts.")
        # Class patterns read their keyword names with a plain getattr.
        if isinstance(node, ast.MatchClass):
            for attr in node.kwd_attrs:
                if attr.startswith("_") or attr in BLOCKED_ATTRIBUTES:
                    raise ScriptRejected(f"Attribute '{attr}' is not allowed in scripts.")
        if isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name and node.name.startswith("_"):
            raise ScriptRejected(f"Name '{node.name}' is not allowed in scripts.")
        if isinstance(node, ast.MatchMapping) and node.rest and node.rest.startswith("_"):
            raise ScriptRejected(f"Name '{node.rest}' is not allowed in scripts.")


def compile_script(script_code: str) -> Any:
    """Parse, validate and wrap a script as the body of an async function.

    A trailing bare expression becomes the return value, so a script may
    end with the list it wants to emit.
    """
    try:
        tree = ast.parse(str(script_code or ""), filename=SCRIPT_FILENAME, mode="exec")
    except SyntaxError as e:
        raise ScriptRejected(f"Script has a syntax error: {e}") from e

    validate_script(tree)

    body: List[ast.stmt] = list(tree.body)
    if body and isinstance(body[-1], ast.Expr):
        body[-1] = ast.copy_location(ast.Return(value=body[-1].value), body[-1])

    module = ast.parse(_SCRIPT_TEMPLATE, filename=SCRIPT_FILENAME, mode="exec")
    module.body[0].body = body or [ast.Pass()]
    ast.fix_missing_locations(module)
    try:
        return compile(module, SCRIPT_FILENAME, "exec")
    except SyntaxError as e:
        raise ScriptRejected(f"Script has a syntax error: {e}") from e


def normalize_results(
    value: Any,
    item_index: int,
    page_id: Optional[str] = None,
) -> List[ItemResult]:
    """Turn a script's return value into output items, or reject it whole."""
    if not isinstance(value, (list, tuple)):
        raise InvalidScriptReturn(
            f"Script must return a list of items, got {type(value).__name__}.",
            item_index=item_index,
        )

    results: List[ItemResult] = []
    for position, record in enumerate(value):
        if isinstance(record, ItemResult):
            result = replace(record, json=dict(record.json), binary=dict(record.binary))
        elif isinstance(record, Mapping) and isinstance(record.get("json"), Mapping):
            binary = record.get("binary") or {}
            if not isinstance(binary, Mapping) or not all(
                isinstance(payload, BinaryPayload) for payload in binary.values()
            ):
                raise InvalidScriptReturn(
                    f"Item {position}: 'binary' must map names to binary(...) payloads.",
                    item_index=item_index,
                )
            result = ItemResult(json=dict(record["json"]), binary=dict(binary))
        elif isinstance(record, Mapping):
            result = ItemResult(json=dict(record))
        else:
            raise InvalidScriptReturn(
                f"Item {position} must be a dict, got {type(record).__name__}.",
                item_index=item_index,
            )
        result.paired_item = item_index
        if page_id:
            result = result.with_page_id(page_id)
        results.append(result)
    return results


class ScriptSandbox:
    """Execute one script per item with only the injected names in scope."""

    def __init__(self, logger: Any = None):
        self.logger = logger or logging.getLogger(__name__)

    async def run(self, script_code: str, bindings: ScriptBindings) -> List[ItemResult]:
        code = compile_script(script_code)
        namespace: Dict[str, Any] = {"__builtins__": dict(SAFE_BUILTINS)}
        namespace.update(self._injected_names(bindings))
        exec(code, namespace)

        try:
            value = await namespace[SCRIPT_FUNCTION]()
        except BrowserNodeError as e:
            if e.item_index is None:
                e.item_index = bindings.item_index
            raise
        except Exception as e:
            self.logger.warning("Script failed on item %s: %s", bindings.item_index, e)
            raise ScriptExecutionError(
                f"Script failed: {e}",
                description="The custom script raised an error.",
                item_index=bindings.item_index,
            ) from e

        return normalize_results(value, bindings.item_index, bindings.page_id)

    def _injected_names(self, bindings: ScriptBindings) -> Dict[str, Any]:
        items = list(bindings.items)
        current = items[bindings.item_index] if 0 <= bindings.item_index < len(items) else ItemResult()
        log = self._make_log(bindings)
        return {
            "page": capability_namespace(PageCapabilities(bindings.page)),
            "browser": capability_namespace(BrowserCapabilities(bindings.browser)),
            "item": copy.deepcopy(current.json),
            "item_binary": {
                name: {k: v for k, v in payload.to_json().items() if k != "data"}
                for name, payload in current.binary.items()
            },
            "items": [copy.deepcopy(entry.json) for entry in items],
            "item_index": bindings.item_index,
            "log": log,
            "print": log,
            "sleep": _sleep,
            "binary": make_binary,
        }

    def _make_log(self, bindings: ScriptBindings) -> Callable[..., None]:
        def log(*args: Any) -> None:
            message = " ".join(str(arg) for arg in args)
            if bindings.manual and bindings.send_message_to_ui is not None:
                bindings.send_message_to_ui(message)
            else:
                self.logger.info("[script] %s", message)

        return log


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(max(0.0, float(seconds)))
