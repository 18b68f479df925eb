"""
Tool registry and dispatcher.

Tools are registered with `@registry.tool(ParamsModel)`. The params model is a
pydantic model whose JSON schema is advertised as the tool's input schema and
which validates arguments before the handler (and any remote call) runs.
"""

import json
import sys
import time
import inspect
from typing import Dict, Any, Optional, List, Callable, Type, NamedTuple, Iterator

from mcp import types
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import ToolCallLogger
from .errors import RemoteError, ToolValidationError, UnknownToolError
from .session import BlueskySession
from .timestamps import localize_timestamps


class ToolParams(BaseModel):
    """Base class for tool parameter models."""

    model_config = ConfigDict(strict=True)


class ToolSpec(NamedTuple):
    name: str
    description: str
    params_model: Type[ToolParams]
    handler: Callable[[BlueskySession, ToolParams], Any]

    def input_schema(self) -> Dict[str, Any]:
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema())


class ToolRegistry:
    """Ordered catalog of tools."""

    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def tool(self, params_model: Type[ToolParams], name: Optional[str] = None):
        """Register a handler; its docstring summary becomes the tool description."""
        def decorator(func: Callable) -> Callable:
            doc = inspect.getdoc(func) or ""
            description = doc.split("\n\n")[0].replace("\n", " ").strip()
            spec = ToolSpec(name or func.__name__, description, params_model, func)
            self._tools[spec.name] = spec
            return func
        return decorator

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def format_validation_error(tool_name: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors(include_url=False):
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return f"Invalid arguments for tool '{tool_name}': " + "; ".join(problems)


def text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


class ToolDispatcher:
    """Resolves, validates and runs tool calls against one shared session."""

    def __init__(self, session: BlueskySession, registry: ToolRegistry,
                 logger: Optional[ToolCallLogger] = None):
        self.session = session
        self.registry = registry
        self.logger = logger or ToolCallLogger()

    def list_tools(self) -> List[types.Tool]:
        return [spec.to_mcp_tool() for spec in self.registry]

    def validate(self, name: str, arguments: Any) -> ToolParams:
        """
        Check a tool call before running it.

        Raises:
            UnknownToolError: If no tool has this name
            ToolValidationError: If the arguments do not match the tool's schema
        """
        spec = self.registry.get(name)
        if spec is None:
            raise UnknownToolError(f"Tool not found: {name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolValidationError(f"Arguments for tool '{name}' must be an object")
        try:
            return spec.params_model.model_validate(arguments)
        except ValidationError as e:
            raise ToolValidationError(
                format_validation_error(name, e),
                data=e.errors(include_url=False, include_context=False),
            )

    def call_tool(self, name: str, arguments: Any) -> types.CallToolResult:
        """
        Run a tool and wrap its output in a CallToolResult.

        Upstream failures become error results; validation problems are raised.
        """
        params = self.validate(name, arguments)
        spec = self.registry.get(name)

        start_time = time.time()
        try:
            payload = spec.handler(self.session, params)
        except RemoteError as e:
            message = f"Rate limited by Bluesky: {e.message}" if e.rate_limited else f"Bluesky request failed: {e.message}"
            print(f"[DEBUG] Tool {name} failed: {message}", file=sys.stderr)
            self._log(name, params, start_time, False, message)
            return text_result(message, is_error=True)
        except ToolValidationError as e:
            self._log(name, params, start_time, False, e.message)
            raise

        self._log(name, params, start_time, True)
        if isinstance(payload, str):
            return text_result(payload)
        return text_result(json.dumps(localize_timestamps(payload), ensure_ascii=False, indent=2))

    def _log(self, name: str, params: ToolParams, start_time: float, success: bool,
             error_message: Optional[str] = None):
        self.logger.log(
            tool_name=name,
            parameters=params.model_dump(mode="json", exclude_none=True),
            execution_time_ms=(time.time() - start_time) * 1000,
            success=success,
            error_message=error_message,
        )
