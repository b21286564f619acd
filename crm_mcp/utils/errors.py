"""Error types for the CRM MCP server."""


class CRMError(Exception):
    """Base exception for CRM MCP errors."""

    pass


class ValidationError(CRMError):
    """Raised when tool input validation fails."""

    pass


class ToolExecutionError(CRMError):
    """Raised by a tool handler when its operation fails.

    The message is shown to the caller as-is, so it must not contain
    connection strings, SQL, or stack traces.
    """

    def __init__(self, message: str, detail: dict | None = None):
        super().__init__(message)
        self.detail = detail or {}


class RecordNotFoundError(ToolExecutionError):
    """Raised when an update or delete targets a record that does not exist."""

    def __init__(self, table: str, key: str, value: str):
        super().__init__(
            f"No record in {table} with {key}={value}",
            detail={"table": table, key: value},
        )
        self.table = table
        self.key = key
        self.value = value


class StoreError(CRMError):
    """Raised when the record store rejects an operation."""

    pass


# Initialization errors
class InitializationError(CRMError):
    """Raised when a component is not properly initialized."""

    def __init__(self, component: str, action: str = "Call initialize() first"):
        super().__init__(f"{component} not initialized. {action}")
        self.component = component


class DatabaseNotInitializedError(InitializationError):
    """Raised when database operation attempted without initialization."""

    def __init__(self):
        super().__init__("Database pool", "Call initialize() first")


# Configuration errors
class ConfigurationError(CRMError):
    """Raised when configuration is missing or invalid."""

    pass


class DuplicateToolError(ConfigurationError):
    """Raised when two tools are registered under the same name."""

    def __init__(self, name: str):
        super().__init__(f"Tool already registered: {name}")
        self.name = name


class RegistrySealedError(ConfigurationError):
    """Raised when registering a tool after the registry was sealed."""

    def __init__(self, name: str):
        super().__init__(f"Cannot register {name}: registry is sealed")
        self.name = name


# Protocol errors
class ProtocolError(CRMError):
    """Raised when an inbound JSON-RPC envelope is malformed."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ToolCallFailed(CRMError):
    """Raised by the stdio transport so the SDK reports a failed dispatch as an error result."""

    def __init__(self, code: int, message: str, tool: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.tool = tool


class MCPClientError(CRMError):
    """Raised by the HTTP client when the server answers with a JSON-RPC error."""

    def __init__(self, code: int, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


class NotConnectedError(CRMError):
    """Raised when the client is used outside its context manager."""

    def __init__(self):
        super().__init__("Client is not connected. Use 'async with' or call connect() first")
