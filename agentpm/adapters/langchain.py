"""Expose a loaded agentpm tool as a LangChain tool.

Requires the optional ``langchain`` extra (``langchain-core``).

    loaded = load_with_meta("@zack/summarize@0.1.0")
    lc_tool = to_langchain_tool(loaded)
    # -> pass [lc_tool] to a LangChain agent
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Mapping, Optional

from ..core.manifest import JsonValue, ToolMeta
from ..loader import LoadedTool

DEFAULT_TOOL_NAME = "agentpm_tool"


def _langchain_tools():
    try:
        from langchain_core import tools as lc_tools
    except ImportError as e:
        raise ImportError(
            "to_langchain_tool requires langchain-core; install with `pip install agentpm-sdk[langchain]`"
        ) from e
    return lc_tools


def is_json_schema_object(schema: Any) -> bool:
    if not isinstance(schema, Mapping) or schema.get("type") != "object":
        return False
    props = schema.get("properties")
    return props is None or isinstance(props, Mapping)


def default_result_to_string(result: JsonValue, meta: Optional[ToolMeta] = None) -> str:
    """Single required string output -> that string; otherwise JSON text."""
    outputs = meta.outputs if meta else None
    if is_json_schema_object(outputs):
        required = outputs.get("required")
        key = required[0] if isinstance(required, list) and required else None
        prop = (outputs.get("properties") or {}).get(key) if key else None
        if (
            isinstance(prop, Mapping)
            and prop.get("type") == "string"
            and isinstance(result, dict)
            and isinstance(result.get(key), str)
        ):
            return result[key]
    return result if isinstance(result, str) else json.dumps(result)


def rich_description(meta: ToolMeta, description: Optional[str] = None) -> str:
    desc = description if description is not None else (meta.description or "")
    if meta.inputs:
        desc += f" Inputs: {json.dumps(meta.inputs)}."
    if meta.outputs:
        desc += f" Outputs: {json.dumps(meta.outputs)}."
    return desc


def string_to_payload(text: str, inputs: Any) -> JsonValue:
    """Map a single string argument onto the tool's input schema."""
    if not is_json_schema_object(inputs):
        return text
    props = list((inputs.get("properties") or {}).keys())
    if "text" in props:
        return {"text": text}
    if len(props) == 1:
        return {props[0]: text}
    # try structured input via JSON, otherwise wrap
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"input": text}


def to_langchain_tool(
    loaded: LoadedTool,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    result_to_string: Optional[Callable[[JsonValue], str]] = None,
    force_simple: bool = False,
):
    """Build a StructuredTool when ``meta.inputs`` is an object schema, else a string Tool."""
    lc_tools = _langchain_tools()
    meta = loaded.meta
    tool_name = name or meta.name or DEFAULT_TOOL_NAME
    desc = rich_description(meta, description)

    def _stringify(result: JsonValue) -> str:
        if result_to_string is not None:
            return result_to_string(result)
        return default_result_to_string(result, meta)

    if not force_simple and is_json_schema_object(meta.inputs):
        schema: Dict[str, Any] = dict(meta.inputs)

        async def _arun(**kwargs: Any) -> str:
            return _stringify(await loaded.func(kwargs))

        def _run(**kwargs: Any) -> str:
            return asyncio.run(_arun(**kwargs))

        return lc_tools.StructuredTool(
            name=tool_name,
            description=desc,
            args_schema=schema,
            func=_run,
            coroutine=_arun,
        )

    async def _arun_str(text: str) -> str:
        return _stringify(await loaded.func(string_to_payload(text, meta.inputs)))

    def _run_str(text: str) -> str:
        return asyncio.run(_arun_str(text))

    return lc_tools.Tool(name=tool_name, description=desc, func=_run_str, coroutine=_arun_str)


__all__ = [
    "to_langchain_tool",
    "default_result_to_string",
    "is_json_schema_object",
    "rich_description",
    "string_to_payload",
]
