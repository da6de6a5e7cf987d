"""Pydantic v2 models for schema documents and normalized actions."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GEOMETRY_SHAPES: frozenset[str] = frozenset(
    {"box", "sphere", "cylinder", "cone", "plane", "torus", "extrude", "line", "spline"}
)

# Legacy geometry shape -> stock factory
SHAPE_FACTORIES: dict[str, str] = {
    "box": "createBox",
    "sphere": "createSphere",
    "cylinder": "createCylinder",
    "cone": "createCone",
    "plane": "createPlane",
    "torus": "createTorus",
    "extrude": "createExtrude",
    "line": "createLinePath",
    "spline": "createSplinePath",
}


class ParameterSpec(BaseModel):
    """A declared parameter: a literal ``value`` or a defining ``expression``."""

    model_config = ConfigDict(extra="allow")

    value: Any = None
    expression: Any = None
    min: Any = None
    max: Any = None
    step: Any = None
    description: str | None = None


class MaterialSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    color: str = "#cccccc"
    roughness: float = 0.5
    metalness: float = 0.0
    transparent: bool = False
    opacity: float = 1.0

    @field_validator("color", mode="before")
    @classmethod
    def _color_to_hex(cls, v: Any) -> Any:
        # 0xff0000 style integers
        if isinstance(v, int) and not isinstance(v, bool):
            return f"#{v:06x}"
        return v


class ProcedureSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    steps: list[dict[str, Any]] = []


class Schema(BaseModel):
    """Top-level schema document. Actions stay raw until normalization."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: float = 4.0
    intent: str | None = None
    materials: dict[str, MaterialSpec] = {}
    global_parameters: dict[str, Any] = Field(default_factory=dict, alias="globalParameters")
    context: dict[str, Any] = {}
    definitions: dict[str, Any] = {}
    fonts: list[str] = []
    actions: list[Any] | None = None
    template: list[Any] | None = None
    procedures: list[ProcedureSpec] | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version_number(cls, v: Any) -> Any:
        if v is None:
            return 4.0
        if isinstance(v, str):
            # "4.1", "v4", "3.2.0"
            text = v.lstrip("vV")
            head = ".".join(text.split(".")[:2])
            return float(head)
        return v

    @field_validator("fonts", mode="before")
    @classmethod
    def _font_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, dict):
            return list(v.values())
        return v

    @model_validator(mode="after")
    def _has_body(self) -> Schema:
        if self.actions is None and self.template is None and not self.procedures:
            raise ValueError("schema needs one of 'actions', 'template' or 'procedures'")
        return self

    @property
    def dialect(self) -> str:
        """``v4`` from version 4 on, else ``legacy``; a missing body defers to the other."""
        modern = self.actions is not None or self.template is not None
        if self.version >= 4:
            return "v4" if modern or not self.procedures else "legacy"
        return "legacy" if self.procedures or not modern else "v4"


# ---------------------------------------------------------------------------
# Normalized actions
# ---------------------------------------------------------------------------


class ActionBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Any = None
    position: Any = None
    rotation: Any = None
    scale: Any = None
    visible: Any = True


class GroupAction(ActionBase):
    type: Literal["group"] = "group"
    children: list[Action] = []


class TemplateAction(ActionBase):
    """Parametric template: the regeneration anchor for its subtree."""

    type: Literal["template"] = "template"
    parameters: dict[str, Any] = {}
    expressions: dict[str, Any] = {}
    template: list[Action] = []


class RepeatAction(ActionBase):
    type: Literal["repeat"] = "repeat"
    count: Any = 0
    distribution: dict[str, Any] | None = None
    instance_parameters: dict[str, Any] = {}
    children: list[Action] = []


class LoopAction(ActionBase):
    type: Literal["loop"] = "loop"
    var: str = "i"
    from_: Any = Field(0, alias="from")
    to: Any = 0
    step: Any = 1
    body: list[Action] = []


class IfAction(ActionBase):
    type: Literal["if"] = "if"
    condition: Any = False
    then: list[Action] = []
    else_: list[Action] = Field(default_factory=list, alias="else")


class HelperAction(ActionBase):
    type: Literal["helper"] = "helper"
    helper: str
    params: dict[str, Any] = {}
    material: Any = None
    store: str | None = Field(None, alias="as")


class ReferenceAction(ActionBase):
    type: Literal["reference"] = "reference"
    target: str
    material: Any = None


class GeometryAction(ActionBase):
    """Legacy leaf: a named shape with evaluated ``dimensions``."""

    type: Literal["geometry"] = "geometry"
    shape: str
    dimensions: Any = None
    material: Any = None


Action = Annotated[
    Union[
        GroupAction,
        TemplateAction,
        RepeatAction,
        LoopAction,
        IfAction,
        HelperAction,
        ReferenceAction,
        GeometryAction,
    ],
    Field(discriminator="type"),
]

for _model in (GroupAction, TemplateAction, RepeatAction, LoopAction, IfAction):
    _model.model_rebuild()
