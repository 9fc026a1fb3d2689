"""
Configuration Schema for Ghii.

A ConfigSchema is a set of named sections. Each section is described by
a pydantic model or any type annotation pydantic can validate, plus
optional defaults and a breaking-change predicate.

The schema plays the validator role for the engine:
- create_defaults(): tree populated from declared defaults
- validate(tree): complete list of Violation (empty when valid)

Usage:
    class Database(BaseModel):
        host: str
        port: int = 5432

    schema = (
        ConfigSchema()
        .section("database", Database)
        .section("mode", Literal["dev", "prod"], defaults="dev")
    )

    schema.create_defaults()
    # {"database": {"port": 5432}, "mode": "dev"}
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any, Protocol, get_args, get_origin, runtime_checkable

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .merge import deep_merge

logger = logging.getLogger(__name__)

BreakingPredicate = Callable[[Any, Any], bool]


@dataclass(frozen=True, slots=True)
class Violation:
    """One violated constraint in a candidate configuration tree."""

    path: tuple[Any, ...]
    reason: str
    value: Any = None
    constraint: str = "invalid"

    @property
    def dotted_path(self) -> str:
        return ".".join(str(p) for p in self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.dotted_path,
            "reason": self.reason,
            "value": self.value,
            "constraint": self.constraint,
        }


@runtime_checkable
class Validator(Protocol):
    """
    Protocol the engine needs from a schema.

    validate() may return the violations directly or an awaitable of them.
    """

    def create_defaults(self) -> dict[str, Any]:
        ...

    def validate(self, tree: Mapping[str, Any]) -> list[Violation] | Awaitable[list[Violation]]:
        ...


@dataclass
class Section:
    """
    A named top-level part of the configuration.

    Attributes:
        name: Top-level key in the configuration tree
        schema: pydantic model class or type annotation
        defaults: Explicit defaults, merged over the model's field defaults
        required: Whether the section must be present after merging
        breaking: Optional (old, new) -> bool incompatibility predicate
    """

    name: str
    schema: Any
    defaults: Any = None
    required: bool = True
    breaking: BreakingPredicate | None = None
    _adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Section name must be a non-empty string")
        self._adapter = TypeAdapter(self.schema)

    def create_defaults(self) -> Any:
        """
        Default value for this section.

        Returns:
            Defaults derived from the model merged with explicit defaults,
            or None when the section declares none
        """
        model = _model_class(self.schema)
        derived = model_defaults(model) if model is not None else None

        if self.defaults is None:
            return derived or None
        explicit = _to_plain(self.defaults)
        if derived and isinstance(explicit, Mapping):
            return deep_merge(derived, explicit)
        return explicit

    def validate(self, value: Any, *, strict: bool = False) -> list[Violation]:
        """Validate a section value, reporting every violation."""
        try:
            self._adapter.validate_python(value, strict=strict)
        except PydanticValidationError as e:
            return [
                Violation(
                    path=(self.name, *err["loc"]),
                    reason=err["msg"],
                    value=err.get("input"),
                    constraint=err["type"],
                )
                for err in e.errors()
            ]
        return []


class ConfigSchema:
    """
    Declarative description of the configuration tree.

    Sections are validated independently and all of their violations are
    collected, so a single validation pass reports every problem.

    Args:
        strict: Use pydantic strict mode (no type coercion)
        allow_unknown_sections: Accept top-level keys with no section
    """

    def __init__(
        self,
        sections: list[Section] | None = None,
        *,
        strict: bool = False,
        allow_unknown_sections: bool = True,
    ):
        self._sections: dict[str, Section] = {}
        self.strict = strict
        self.allow_unknown_sections = allow_unknown_sections
        for section in sections or []:
            self.add(section)

    @classmethod
    def from_model(cls, model: type[BaseModel], **kwargs: Any) -> "ConfigSchema":
        """
        Build a schema from a root model, one section per field.

        Example:
            class AppConfig(BaseModel):
                server: Server
                debug: bool = False

            schema = ConfigSchema.from_model(AppConfig)
        """
        schema = cls(**kwargs)
        for name, info in model.model_fields.items():
            required = info.is_required()
            defaults = None if required else info.get_default(call_default_factory=True)
            schema.add(
                Section(
                    name=info.alias or name,
                    # Field constraints live in metadata, not in the bare annotation
                    schema=info.rebuild_annotation(),
                    defaults=defaults,
                    required=required,
                )
            )
        return schema

    def add(self, section: Section) -> "ConfigSchema":
        if section.name in self._sections:
            raise ValueError(f"Section '{section.name}' already registered")
        self._sections[section.name] = section
        logger.debug(f"[schema] Registered section: {section.name}")
        return self

    def section(
        self,
        name: str,
        schema: Any,
        *,
        defaults: Any = None,
        required: bool = True,
        breaking: BreakingPredicate | None = None,
    ) -> "ConfigSchema":
        """Register a section (fluent)."""
        return self.add(
            Section(
                name=name,
                schema=schema,
                defaults=defaults,
                required=required,
                breaking=breaking,
            )
        )

    def get(self, name: str) -> Section | None:
        return self._sections.get(name)

    @property
    def sections(self) -> list[Section]:
        """Sections in registration order."""
        return list(self._sections.values())

    @property
    def section_names(self) -> list[str]:
        return list(self._sections)

    def create_defaults(self) -> dict[str, Any]:
        """Fresh tree holding every declared default. Sections without defaults are absent."""
        tree: dict[str, Any] = {}
        for section in self._sections.values():
            value = section.create_defaults()
            if value is not None:
                tree[section.name] = value
        return tree

    def validate(self, tree: Mapping[str, Any]) -> list[Violation]:
        """Validate a candidate tree against every section."""
        violations: list[Violation] = []

        for name, section in self._sections.items():
            if name not in tree:
                if section.required:
                    violations.append(
                        Violation(
                            path=(name,),
                            reason="Section is required",
                            constraint="missing",
                        )
                    )
                continue
            violations.extend(section.validate(tree[name], strict=self.strict))

        if not self.allow_unknown_sections:
            for key in tree:
                if key not in self._sections:
                    violations.append(
                        Violation(
                            path=(key,),
                            reason="Unknown section",
                            value=tree[key],
                            constraint="extra_forbidden",
                        )
                    )

        return violations

    def __contains__(self, name: object) -> bool:
        return name in self._sections

    def __len__(self) -> int:
        return len(self._sections)

    def __repr__(self) -> str:
        return f"ConfigSchema(sections={self.section_names})"


def model_defaults(model: type[BaseModel]) -> dict[str, Any]:
    """
    Defaults declared by a pydantic model, keyed by alias.

    Required fields are absent, except nested models whose own fields
    declare defaults.
    """
    defaults: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        key = info.alias or name
        if not info.is_required():
            defaults[key] = _to_plain(info.get_default(call_default_factory=True))
            continue
        nested = _model_class(info.annotation)
        if nested is not None:
            nested_defaults = model_defaults(nested)
            if nested_defaults:
                defaults[key] = nested_defaults
    return defaults


def _model_class(annotation: Any) -> type[BaseModel] | None:
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    # Optional[Model] / Model | None
    models = [
        arg for arg in get_args(annotation)
        if isinstance(arg, type) and issubclass(arg, BaseModel)
    ]
    if len(models) == 1 and all(
        arg is type(None) or arg is models[0] for arg in get_args(annotation)
    ):
        return models[0]
    return None


def _to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return copy.deepcopy(value)
