import pytest

from liveauction.errors import AuctionValidationError
from liveauction.forms import FieldSpec, FormSchema, FormSchemaRegistry
from liveauction.models import CustomFields


def _schema() -> FormSchema:
    return FormSchema.from_dict(
        {
            "fields": [
                {"fieldName": "battingStyle", "fieldLabel": "Batting style", "fieldType": "select", "required": True, "options": ["Left", "Right"]},
                {"fieldName": "age", "fieldLabel": "Age", "fieldType": "number"},
                {"fieldName": "idProof", "fieldLabel": "ID proof", "fieldType": "file", "required": True},
            ]
        }
    )


def test_schema_round_trips_through_json(tmp_path):
    path = tmp_path / "form.json"
    _schema().save(path)

    loaded = FormSchema.load(path)

    assert [spec.name for spec in loaded.fields] == ["battingStyle", "age", "idProof"]
    assert loaded.fields[0].options == ("Left", "Right")


def test_check_coerces_numbers_and_skips_file_fields():
    checked = _schema().check(CustomFields({"battingStyle": "Left", "age": "21"}))

    assert checked.root == {"battingStyle": "Left", "age": 21}


@pytest.mark.parametrize(
    "fields",
    [
        {"age": 20},
        {"battingStyle": "Both"},
        {"battingStyle": "Left", "age": "old"},
        {"battingStyle": "Left", "shoeSize": 9},
    ],
)
def test_check_rejects_invalid_input(fields):
    with pytest.raises(AuctionValidationError):
        _schema().check(CustomFields(fields))


def test_unknown_field_type_is_rejected():
    with pytest.raises(ValueError):
        FormSchema.from_dict({"fields": [{"fieldName": "x", "fieldType": "colour"}]})


def test_registry_passes_through_without_schema():
    registry = FormSchemaRegistry()
    fields = CustomFields({"anything": "goes"})

    assert registry.check("t1", fields) is fields

    registry.register("t1", FormSchema([FieldSpec(name="bio", label="Bio")]))
    with pytest.raises(AuctionValidationError):
        registry.check("t1", fields)
    registry.clear("t1")
    assert registry.get("t1") is None


def test_registry_loads_tenant_files_from_directory(tmp_path):
    _schema().save(tmp_path / "t1.json")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    registry = FormSchemaRegistry.load_dir(tmp_path)

    assert registry.get("t1") is not None
    assert registry.get("t2") is None
    with pytest.raises(AuctionValidationError):
        registry.check("t1", CustomFields({"age": 20}))


def test_registry_rejects_broken_schema_file(tmp_path):
    (tmp_path / "t1.json").write_text('{"fields": [{"fieldLabel": "No name"}]}', encoding="utf-8")

    with pytest.raises(ValueError, match="t1.json"):
        FormSchemaRegistry.load_dir(tmp_path)
