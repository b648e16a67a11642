import pytest

from herald.record import ServerRecord


def test_field_sets(record):
    assert set(record.add_fields("k")) == {
        "serverKey", "serverUuid", "serverName", "serverPort",
        "serverPlayers", "serverCapacity", "serverExtras",
    }
    assert "serverPort" not in record.update_fields("k")
    assert record.remove_fields("k") == {"serverKey": "k", "serverUuid": "u1"}


def test_values_are_strings(record):
    fields = record.add_fields("k")
    assert all(isinstance(v, str) for v in fields.values())
    assert fields["serverCapacity"] == "10"


def test_uuid_cannot_be_reassigned(record):
    with pytest.raises(AttributeError):
        record.uuid = "u2"
    assert record.uuid == "u1"


def test_other_fields_are_mutable(record):
    record.player_count = 3
    record.name = "Bar"
    assert record.update_fields("k")["serverPlayers"] == "3"
    assert record.update_fields("k")["serverName"] == "Bar"


@pytest.mark.parametrize("field", ["port", "player_count", "player_capacity"])
def test_negative_counts_rejected(field):
    with pytest.raises(ValueError):
        ServerRecord(uuid="u1", **{field: -1})


@pytest.mark.parametrize("field", ["port", "player_count", "player_capacity"])
def test_negative_assignment_rejected(record, field):
    before = getattr(record, field)
    with pytest.raises(ValueError):
        setattr(record, field, -1)
    assert getattr(record, field) == before
