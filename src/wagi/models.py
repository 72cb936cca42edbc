"""Data models for wagi.

InboundRequest and OutwardResponse are the values exchanged with the
transport layer; they decouple the gateway from any particular web framework.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from wagi.constants import DEFAULT_STATUS_CODE


class InboundRequest(BaseModel):
    """An HTTP request as delivered by the transport layer.

    Headers are an ordered list of (name, value) pairs; the same name may
    appear several times.  Names compare case-insensitively.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str = Field(default="GET", description="HTTP method, verbatim")
    path: str = Field(default="/", description="Request path")
    query_string: str = Field(default="", description="Query string, with or without leading '?'")
    headers: list[tuple[str, str]] = Field(default_factory=list, description="Header multimap in arrival order")
    body: bytes = Field(default=b"", description="Request body")
    client_address: str | None = Field(default=None, description="Client IP address, if known")
    matched_route: str | None = Field(default=None, description="Route pattern that matched this request")
    scheme: str = Field(default="http", description="URL scheme")
    host: str = Field(default="localhost", description="Host name, without port")
    port: int | None = Field(default=None, ge=0, le=65535, description="Port, if explicit in the Host header")

    @property
    def query(self) -> str:
        """Query string without the leading '?'."""
        return self.query_string.removeprefix("?")

    @property
    def content_type(self) -> str | None:
        return self.get_header("content-type")

    def get_header(self, name: str) -> str | None:
        """First value of header ``name`` (case-insensitive), or None."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


class OutwardResponse(BaseModel):
    """Response handed back to the transport layer."""

    status_code: int = Field(default=DEFAULT_STATUS_CODE, ge=100, le=999)
    reason: str | None = Field(default=None, description="Reason phrase, only set when the module supplied one")
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""

    @property
    def content_type(self) -> str | None:
        return self.get_header("content-type")

    def get_header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def get_all(self, name: str) -> list[str]:
        """All values of header ``name`` (case-insensitive), in order."""
        wanted = name.lower()
        return [value for key, value in self.headers if key.lower() == wanted]


class ExitClassification(str, Enum):
    """How a module invocation ended."""

    SUCCESS = "success"
    TRAP = "trap"
    LINKAGE_FAILURE = "linkage_failure"


class ExecutionResult(BaseModel):
    """Outcome of one module invocation."""

    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float = Field(ge=0, description="Wall time spent instantiating and invoking")
    exit_classification: ExitClassification
    exit_code: int | None = Field(default=None, description="WASI exit code, when the module called proc_exit")
    stderr: str = Field(default="", description="Module stderr, NUL padding stripped")
