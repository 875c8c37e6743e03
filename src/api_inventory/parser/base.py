"""Unified data models for extracted API routes.

All extractors (decorator, fluent, builder) convert their syntax trees
into these standard models for downstream processing.
"""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from api_inventory.paths import to_key

SchemaType = Literal["string", "number", "boolean", "array", "object"]
Example = Union[bool, int, float, str]


class SchemaNode(BaseModel):
    """Structural description of a parameter or body shape."""

    type: SchemaType
    properties: dict[str, "SchemaNode"] | None = None
    required: list[str] | None = None
    items: "SchemaNode | None" = None
    example: Example | None = None
    optional: bool = Field(default=False, exclude=True)  # set by .optional()/.nullish()

    @classmethod
    def obj(cls, properties: dict[str, "SchemaNode"] | None = None, required: list[str] | None = None) -> "SchemaNode":
        return cls(type="object", properties=properties, required=required or None)

    def has_properties(self) -> bool:
        return self.type == "object" and bool(self.properties)

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class Param(BaseModel):
    """A single path or query parameter."""

    name: str
    location: str  # path / query
    required: bool
    param_type: str = "string"


class Parameters(BaseModel):
    path: list[Param] = []
    query: list[Param] = []
    body: SchemaNode | None = None


class RouteFact(BaseModel):
    """A route as declared in one file, before mount prefixes are applied."""

    router_id: str | None = None  # None for controller classes
    method: str
    path: str
    description: str | None = None
    tags: list[str] = []
    parameters: Parameters = Parameters()


class Endpoint(BaseModel):
    """A fully resolved endpoint with its effective absolute path."""

    model_config = ConfigDict(frozen=True)

    method: str  # GET / POST / PUT / DELETE / PATCH / OPTIONS / HEAD / ALL
    path: str  # /users/:id
    description: str
    tags: list[str] = []
    parameters: Parameters = Parameters()
    source_file: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def key(self) -> str:
        return to_key(self.method, self.path)


class ExtractionResult(BaseModel):
    """Endpoints of one run plus the requested files that could not be read."""

    endpoints: list[Endpoint] = []
    failures: dict[str, str] = {}
