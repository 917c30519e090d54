"""Unit tests for validation.py - manifest schema validation."""

from models import StorageSnapshot, VirtualStorageMachine
from validation import (
    parse_spec,
    validate_manifest_document,
    validate_spec_against_schema,
)


class TestValidateSpecAgainstSchema:
    """Tests for validate_spec_against_schema function."""

    def test_valid_spec(self):
        schema = {
            "type": "object",
            "required": ["name"],
            "properties": {"name": {"type": "string"}},
        }
        is_valid, error = validate_spec_against_schema({"name": "x"}, schema)
        assert is_valid is True
        assert error is None

    def test_collects_all_errors(self):
        schema = {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "count": {"type": "integer"},
            },
        }
        is_valid, error = validate_spec_against_schema(
            {"name": 1, "count": "x"}, schema
        )
        assert is_valid is False
        assert "name:" in error
        assert "count:" in error


class TestValidateManifestDocument:
    """Tests for validate_manifest_document function."""

    def test_valid_document(self, snapshot_spec):
        document = {
            "kind": "VolumeSnapshot",
            "metadata": {"name": "nightly-vol1"},
            "spec": snapshot_spec,
            "options": {"rename": False},
        }
        assert validate_manifest_document(document) == (True, None)

    def test_missing_spec(self):
        is_valid, error = validate_manifest_document(
            {"kind": "StorageVM", "metadata": {"name": "svm1"}}
        )
        assert is_valid is False
        assert "'spec' is a required property" in error

    def test_invalid_name(self):
        is_valid, error = validate_manifest_document(
            {"kind": "StorageVM", "metadata": {"name": "bad name!"}, "spec": {}}
        )
        assert is_valid is False
        assert error.startswith("metadata.name:")

    def test_rename_must_be_boolean(self):
        is_valid, error = validate_manifest_document(
            {
                "kind": "StorageVM",
                "metadata": {"name": "svm1"},
                "spec": {},
                "options": {"rename": "yes"},
            }
        )
        assert is_valid is False
        assert "options.rename" in error

    def test_unknown_top_level_key(self):
        is_valid, _ = validate_manifest_document(
            {"kind": "StorageVM", "metadata": {"name": "a"}, "spec": {}, "extra": 1}
        )
        assert is_valid is False

    def test_not_a_mapping(self):
        assert validate_manifest_document(["a"]) == (
            False,
            "(root): document must be a mapping",
        )


class TestParseSpec:
    """Tests for parse_spec function."""

    def test_valid(self, snapshot_spec):
        model, error = parse_spec(StorageSnapshot, snapshot_spec)
        assert error is None
        assert model.volume.name == "vol1"

    def test_invalid(self):
        model, error = parse_spec(
            VirtualStorageMachine, {"name": "svm1", "max_volumes": "many"}
        )
        assert model is None
        assert error.startswith("max_volumes:")

    def test_missing_required(self):
        model, error = parse_spec(StorageSnapshot, {"name": "x"})
        assert model is None
        assert "volume: Field required" in error
        assert "svm: Field required" in error
