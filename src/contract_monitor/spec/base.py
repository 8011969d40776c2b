"""Unified data models for a loaded API contract.

Both the native contract shape and OpenAPI 3 documents are normalised
into these models before validation or drift analysis.
"""

from pydantic import BaseModel, ConfigDict, Field


class Param(BaseModel):
    """A single declared operation parameter (path, query, header, or cookie)."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # path / query / header / cookie
    required: bool = False
    schema_node: dict = Field(default_factory=dict)
    description: str = ""


class EndpointDescriptor(BaseModel):
    """A single declared operation, keyed by (method, path_pattern)."""

    model_config = ConfigDict(frozen=True)

    method: str  # GET / POST / PUT / DELETE / PATCH
    path_pattern: str  # /api/notes/{id}
    parameters: list[Param] = Field(default_factory=list)
    request_schema: dict | None = None
    request_body_required: bool = False
    response_schemas: dict[str, dict] = Field(default_factory=dict)  # {status: schema}
    summary: str = ""
    description: str = ""
    operation_id: str = ""
    tags: list[str] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.path_pattern)

    def parameters_in(self, location: str) -> list[Param]:
        return [p for p in self.parameters if p.location == location]

    @property
    def is_documented(self) -> bool:
        return bool(self.summary or self.description)
