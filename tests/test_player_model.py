from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from liveauction.models import CustomFields, PlayerRecord, PlayerStatus, Principal, TeamRecord


def test_player_record_is_frozen():
    record = PlayerRecord(player_id="p1", tenant_id="t1", name="Test Player")

    assert record.status is PlayerStatus.AVAILABLE
    assert record.player_class == "N/A"

    with pytest.raises((TypeError, ValidationError)):
        record.name = "Other"  # type: ignore[misc]


def test_player_record_dumps_status_as_string():
    record = PlayerRecord(player_id="p1", tenant_id="t1", name="A", status=PlayerStatus.SOLD, team_id="x", sold_amount=5)

    payload = record.model_dump(mode="json")

    assert payload["status"] == "sold"
    assert payload["custom_fields"] == {}
    assert record.is_sold


@pytest.mark.parametrize("key", ["1abc", "has space", "status", "regNo", ""])
def test_custom_fields_reject_bad_keys(key):
    with pytest.raises(ValidationError):
        CustomFields({key: "x"})


def test_custom_fields_from_form_drops_blanks():
    fields = CustomFields.from_form({"nickname": "  Ace ", "bio": "   ", "age": None, "jersey": 9})

    assert fields.root == {"nickname": "Ace", "jersey": 9}
    assert len(fields) == 2


def test_team_record_capacity_and_budget_helpers():
    team = TeamRecord(team_id="t", tenant_id="x", name="T", total_slots=2, filled_slots=1, budget=100, remaining_budget=40)

    assert team.available_slots == 1
    assert team.can_add_player()
    assert team.has_enough_budget(40)
    assert not team.has_enough_budget(41)
    assert TeamRecord(team_id="u", tenant_id="x", name="U", total_slots=1).has_enough_budget(10**9)


def test_team_record_requires_a_slot():
    with pytest.raises(ValidationError):
        TeamRecord(team_id="t", tenant_id="x", name="T", total_slots=0)


def test_principal_expiry_only_applies_to_auctioneers():
    past = datetime.now(timezone.utc) - timedelta(minutes=1)

    assert Principal(tenant_id="t", access_expiry=past).is_expired()
    assert not Principal(tenant_id="t", role="admin", access_expiry=past).is_expired()
    assert not Principal(tenant_id="t").is_expired()
    naive_future = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=1)
    assert not Principal(tenant_id="t", access_expiry=naive_future).is_expired()
