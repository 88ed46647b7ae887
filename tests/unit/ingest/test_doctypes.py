"""Tests for the doc-type registry and validator."""

from __future__ import annotations

import pytest

from kbsync.ingest.doctypes import BUILTIN_DOC_TYPES, DocTypeDefinition, DocTypeRegistry, DocTypeValidator
from kbsync.ingest.frontmatter import FrontmatterParser

parser = FrontmatterParser()


def _validate(text: str, registry: DocTypeRegistry | None = None):
    return DocTypeValidator(registry).validate(parser.parse(text))


def test_builtins_registered():
    registry = DocTypeRegistry()
    assert registry.names() == sorted(d.name for d in BUILTIN_DOC_TYPES)
    assert "adr" in registry
    assert "ADR" in registry


def test_plain_doc_is_valid():
    result = _validate("just text\n")
    assert result.is_valid
    assert result.doc_type == "doc"


def test_required_title_satisfied_by_h1():
    assert _validate("---\ndoc_type: spec\n---\n# Search API\n").is_valid


def test_missing_required_field():
    result = _validate("---\ndoc_type: spec\n---\nno title anywhere\n")
    assert not result.is_valid
    assert "Missing required field: title" in result.errors


def test_enum_values_checked_case_insensitively():
    assert _validate("---\ndoc_type: adr\ntitle: T\nstatus: Accepted\n---\n").is_valid
    result = _validate("---\ndoc_type: adr\ntitle: T\nstatus: maybe\n---\n")
    assert not result.is_valid
    assert "status" in result.errors[0]


def test_unknown_type_is_error_unless_permissive():
    strict = _validate("---\ndoc_type: recipe\n---\n")
    assert not strict.is_valid
    lenient = _validate("---\ndoc_type: recipe\n---\n", DocTypeRegistry(permissive=True))
    assert lenient.is_valid
    assert lenient.warnings


def test_custom_type_registration():
    registry = DocTypeRegistry()
    registry.register(DocTypeDefinition("runbook", "Ops runbook", ("title", "owner")))
    assert not _validate("---\ndoc_type: runbook\ntitle: Restart\n---\n", registry).is_valid
    assert _validate("---\ndoc_type: runbook\ntitle: Restart\nowner: ops\n---\n", registry).is_valid


def test_duplicate_registration_rejected():
    registry = DocTypeRegistry()
    with pytest.raises(ValueError):
        registry.register(DocTypeDefinition("doc"))
    registry.register(DocTypeDefinition("doc", "replaced"), replace=True)
    assert registry.get("doc").description == "replaced"


def test_unregister():
    registry = DocTypeRegistry()
    assert registry.unregister("style") is True
    assert registry.unregister("style") is False
    assert "style" not in registry


def test_parser_warnings_carried_into_result():
    result = _validate("---\npromotion_level: loud\n---\nbody\n")
    assert result.is_valid
    assert any("loud" in w for w in result.warnings)
