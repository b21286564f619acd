"""Operation registry: tool name -> schema + handler.

Tools are registered once at startup. Duplicate names and registrations
after ``seal()`` raise immediately, so a misspelled or doubled tool is a
startup failure instead of a runtime fall-through.

Example:
    registry = OperationRegistry()

    @registry.tool("get_tasks", TASKS, "Retrieve tasks", GetTasksArgs)
    async def get_tasks(args: GetTasksArgs, ctx: ToolContext) -> ToolResult:
        ...

    registry.seal()
    definition = registry.resolve("get_tasks")
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from crm_mcp.utils.errors import ConfigurationError, DuplicateToolError, RegistrySealedError

from .models import ResourceDomain, ResourceReader, ToolArguments, ToolHandler

logger = logging.getLogger(__name__)

TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


def _simplify_schema(node: Any) -> Any:
    """Tidy a pydantic JSON schema for MCP clients.

    Drops ``title`` keys and collapses ``anyOf: [X, {"type": "null"}]``
    (how pydantic renders optional fields) into ``X``.
    """
    if isinstance(node, list):
        return [_simplify_schema(item) for item in node]
    if not isinstance(node, dict):
        return node

    result = {key: _simplify_schema(value) for key, value in node.items() if key != "title"}
    variants = result.get("anyOf")
    if isinstance(variants, list):
        non_null = [v for v in variants if v != {"type": "null"}]
        if len(non_null) == 1 and len(non_null) < len(variants):
            del result["anyOf"]
            merged = dict(non_null[0])
            merged.update(result)
            if merged.get("default", "") is None:
                del merged["default"]
            result = merged
    return result


def input_schema_for(model: type[ToolArguments]) -> dict[str, Any]:
    """Generate the advertised input schema for an arguments model."""
    schema = _simplify_schema(model.model_json_schema())
    schema.setdefault("required", [])
    return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Static description of one operation."""

    name: str
    domain: ResourceDomain
    description: str
    arguments: type[ToolArguments]
    handler: ToolHandler
    input_schema: dict[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_schema", input_schema_for(self.arguments))

    def parse_arguments(self, raw: dict[str, Any]) -> ToolArguments:
        """Validate raw arguments.

        Raises:
            pydantic.ValidationError: If the arguments do not match the model.
        """
        return self.arguments.model_validate(raw)

    def to_mcp(self) -> dict[str, Any]:
        """Render as a ``tools/list`` entry."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass(frozen=True)
class ResourceDefinition:
    """A read-only view exposed through ``resources/read``."""

    uri: str
    name: str
    description: str
    domain: ResourceDomain
    reader: ResourceReader
    mime_type: str = "application/json"

    def to_mcp(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class PromptDefinition:
    """A static prompt template exposed through ``prompts/get``."""

    name: str
    description: str
    template: str
    arguments: tuple[dict[str, Any], ...] = ()

    def render(self, values: dict[str, Any] | None = None) -> str:
        values = dict(values or {})
        for argument in self.arguments:
            values.setdefault(argument["name"], argument.get("default", ""))
        return self.template.format(**values)

    def to_mcp(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {k: v for k, v in argument.items() if k != "default"} for argument in self.arguments
            ],
        }


class OperationRegistry:
    """Registered tools, resources and prompts, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._resources: dict[str, ResourceDefinition] = {}
        self._prompts: dict[str, PromptDefinition] = {}
        self._sealed = False

    def _check_open(self, name: str) -> None:
        if self._sealed:
            raise RegistrySealedError(name)

    def register(
        self,
        name: str,
        domain: ResourceDomain,
        description: str,
        arguments: type[ToolArguments],
        handler: ToolHandler,
    ) -> ToolDefinition:
        """
        Register a tool.

        Args:
            name: Tool name (lowercase snake_case)
            domain: Resource domain whose grant controls the tool
            description: Description shown to the model
            arguments: Pydantic model validating the tool's arguments
            handler: Async function ``(args, context) -> ToolResult``

        Raises:
            DuplicateToolError: If ``name`` is already registered
            RegistrySealedError: If the registry has been sealed
            ConfigurationError: If ``name`` is not a valid tool name
        """
        self._check_open(name)
        if not TOOL_NAME_PATTERN.match(name):
            raise ConfigurationError(f"Invalid tool name: {name!r}")
        if name in self._tools:
            raise DuplicateToolError(name)

        definition = ToolDefinition(
            name=name,
            domain=domain,
            description=description,
            arguments=arguments,
            handler=handler,
        )
        self._tools[name] = definition
        logger.debug(f"Registered tool: {name} ({domain.module})")
        return definition

    def tool(
        self,
        name: str,
        domain: ResourceDomain,
        description: str,
        arguments: type[ToolArguments],
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(name, domain, description, arguments, handler)
            return handler

        return decorator

    def register_resource(self, resource: ResourceDefinition) -> None:
        self._check_open(resource.uri)
        if resource.uri in self._resources:
            raise ConfigurationError(f"Resource already registered: {resource.uri}")
        self._resources[resource.uri] = resource

    def register_prompt(self, prompt: PromptDefinition) -> None:
        self._check_open(prompt.name)
        if prompt.name in self._prompts:
            raise ConfigurationError(f"Prompt already registered: {prompt.name}")
        self._prompts[prompt.name] = prompt

    def seal(self) -> None:
        """Freeze the registry; later registrations raise ``RegistrySealedError``."""
        self._sealed = True
        logger.info(
            f"Registry sealed with {len(self._tools)} tools, "
            f"{len(self._resources)} resources, {len(self._prompts)} prompts"
        )

    @property
    def sealed(self) -> bool:
        return self._sealed

    def resolve(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def resolve_resource(self, uri: str) -> ResourceDefinition | None:
        return self._resources.get(uri)

    def resolve_prompt(self, name: str) -> PromptDefinition | None:
        return self._prompts.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def list_resources(self) -> list[ResourceDefinition]:
        return list(self._resources.values())

    def list_prompts(self) -> list[PromptDefinition]:
        return list(self._prompts.values())

    def tools_for_domain(self, domain_key: str) -> list[ToolDefinition]:
        return [tool for tool in self._tools.values() if tool.domain.key == domain_key]

    def domains(self) -> list[ResourceDomain]:
        seen: dict[str, ResourceDomain] = {}
        for tool in self._tools.values():
            seen.setdefault(tool.domain.key, tool.domain)
        return list(seen.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())
