"""Doc-type registry and validator.

Doc types are data, not classes: each definition names its required
front-matter fields and, optionally, the allowed values of enumerated fields.
Projects register custom types at runtime; validation is a capability
(``DocTypeValidator.validate``) so the lifecycle engine never hard-codes types.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from kbsync.ingest.frontmatter import ParsedDocument


@dataclass(frozen=True)
class DocTypeDefinition:
    """Schema for one doc type.

    Attributes:
        name: Identifier used in front matter ``doc_type``.
        description: One-line description, shown by ``kbsync status``.
        required_fields: Front-matter keys that must be present and non-empty.
        allowed_values: Per-field whitelist of values (compared case-insensitively).
    """

    name: str
    description: str = ""
    required_fields: tuple[str, ...] = ()
    allowed_values: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass
class ValidationResult:
    is_valid: bool
    doc_type: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Validator(Protocol):
    def validate(self, parsed: ParsedDocument) -> ValidationResult: ...


_SEVERITIES = ("low", "medium", "high", "critical")

BUILTIN_DOC_TYPES: tuple[DocTypeDefinition, ...] = (
    DocTypeDefinition("doc", "General documentation"),
    DocTypeDefinition("spec", "Specification or requirements", ("title",)),
    DocTypeDefinition(
        "adr",
        "Architecture decision record",
        ("title",),
        {"status": ("proposed", "accepted", "deprecated", "superseded")},
    ),
    DocTypeDefinition(
        "problem",
        "Problem and its resolution",
        ("title",),
        {
            "status": ("open", "investigating", "resolved", "wont-fix"),
            "severity": _SEVERITIES,
        },
    ),
    DocTypeDefinition(
        "insight",
        "Lesson learned or discovery",
        ("title",),
        {"confidence": ("low", "medium", "high")},
    ),
    DocTypeDefinition("codebase", "Module or component knowledge", ("title",)),
    DocTypeDefinition("tool", "Tool or library notes", ("title",)),
    DocTypeDefinition(
        "style",
        "Coding style or convention",
        ("title",),
        {"scope": ("project", "team", "organization")},
    ),
)


class DocTypeRegistry:
    """Thread-safe map of doc-type name to definition.

    Args:
        definitions: Initial definitions; defaults to the built-ins.
        permissive: When True, unknown doc types validate with a warning
            instead of an error.
    """

    def __init__(
        self,
        definitions: Iterable[DocTypeDefinition] | None = None,
        *,
        permissive: bool = False,
    ) -> None:
        self._lock = threading.Lock()
        self._types: dict[str, DocTypeDefinition] = {}
        self.permissive = permissive
        for definition in BUILTIN_DOC_TYPES if definitions is None else definitions:
            self.register(definition)

    def register(self, definition: DocTypeDefinition, *, replace: bool = False) -> None:
        """Add a doc type.

        Raises:
            ValueError: If the name is blank, or already registered and *replace* is False.
        """
        name = definition.name.strip().lower()
        if not name:
            raise ValueError("doc type name must be non-empty")
        with self._lock:
            if name in self._types and not replace:
                raise ValueError(f"Doc type '{name}' is already registered")
            self._types[name] = definition

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._types.pop(name.lower(), None) is not None

    def get(self, name: str) -> DocTypeDefinition | None:
        with self._lock:
            return self._types.get(name.lower())

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None


class DocTypeValidator:
    """Validate a parsed document against its registered doc type."""

    def __init__(self, registry: DocTypeRegistry | None = None) -> None:
        self.registry = registry or DocTypeRegistry()

    def validate(self, parsed: ParsedDocument) -> ValidationResult:
        errors: list[str] = []
        warnings = list(parsed.warnings)

        definition = self.registry.get(parsed.doc_type)
        if definition is None:
            message = (
                f"Unknown doc_type '{parsed.doc_type}' "
                f"(registered: {', '.join(self.registry.names())})"
            )
            if self.registry.permissive:
                warnings.append(message)
            else:
                errors.append(message)
            return ValidationResult(not errors, parsed.doc_type, errors, warnings)

        values = _effective_values(parsed)
        for name in definition.required_fields:
            if _is_blank(values.get(name)):
                errors.append(f"Missing required field: {name}")

        for name, allowed in definition.allowed_values.items():
            value = values.get(name)
            if _is_blank(value):
                continue
            if str(value).strip().lower() not in allowed:
                errors.append(
                    f"Field '{name}' must be one of {', '.join(allowed)}; got '{value}'"
                )

        return ValidationResult(not errors, definition.name, errors, warnings)


def _effective_values(parsed: ParsedDocument) -> dict[str, Any]:
    # title may come from the first H1 rather than front matter
    values = dict(parsed.frontmatter)
    if parsed.title and _is_blank(values.get("title")):
        values["title"] = parsed.title
    return values


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
