import pytest

from liveauction.engine import ledger
from liveauction.errors import AuctionValidationError, InsufficientBudget, SlotsExhausted
from liveauction.models import PlayerRecord, PlayerStatus, TeamRecord


def _team(**fields) -> TeamRecord:
    fields.setdefault("total_slots", 2)
    return TeamRecord(team_id="team", tenant_id="t1", name="Team", **fields)


def test_add_member_debits_budget_and_slot():
    team = _team(budget=100, remaining_budget=100)

    updated = ledger.add_member(team, "p1", 30)

    assert (updated.filled_slots, updated.remaining_budget, updated.player_ids) == (1, 70, ["p1"])
    assert team.filled_slots == 0


def test_add_member_checks_slots_before_budget():
    full = _team(total_slots=1, filled_slots=1, player_ids=["p0"], budget=10, remaining_budget=0)

    with pytest.raises(SlotsExhausted):
        ledger.add_member(full, "p1", 50)
    with pytest.raises(InsufficientBudget):
        ledger.add_member(_team(budget=10, remaining_budget=10), "p1", 11)


def test_add_member_does_not_duplicate_listed_player():
    team = _team(total_slots=1, filled_slots=1, player_ids=["p1"], budget=100, remaining_budget=100)

    updated = ledger.add_member(team, "p1", 20)

    assert updated.player_ids == ["p1"]
    assert updated.filled_slots == 1


def test_remove_member_refunds():
    team = _team(filled_slots=1, player_ids=["p1"], budget=100, remaining_budget=70)

    updated = ledger.remove_member(team, "p1", 30)

    assert (updated.filled_slots, updated.remaining_budget, updated.player_ids) == (0, 100, [])


def test_unlimited_team_never_tracks_remaining():
    team = _team()

    assert ledger.add_member(team, "p1", 10**6).remaining_budget is None
    assert ledger.adjust_spend(team, 500) is team


def test_rebudget_keeps_spent_amount():
    team = _team(budget=100, remaining_budget=40)

    assert ledger.rebudget(team, 200, 60).remaining_budget == 140
    with pytest.raises(AuctionValidationError):
        ledger.rebudget(team, 50, 60)


@pytest.mark.parametrize(
    "existing, expected",
    [([], "P0001"), (["P0009", "P0003"], "P0010"), (["X-12-b", None, "abc"], "P0013"), (["P9999"], "P10000")],
)
def test_next_reg_no(existing, expected):
    assert ledger.next_reg_no(existing) == expected


def test_audit_reports_drift():
    sold_elsewhere = PlayerRecord(player_id="p1", tenant_id="t1", name="A", status=PlayerStatus.SOLD, team_id="team", sold_amount=30)
    orphan = PlayerRecord(player_id="p2", tenant_id="t1", name="B", status=PlayerStatus.SOLD, sold_amount=5)
    team = _team(filled_slots=2, player_ids=["p1"], budget=100, remaining_budget=100)

    issues = ledger.audit([sold_elsewhere, orphan], [team])
    messages = [(issue.entity, issue.entity_id) for issue in issues]

    assert ("player", "p2") in messages
    assert ("team", "team") in messages
    assert any("remaining budget" in issue.message for issue in issues)
    assert any("filled slots" in issue.message for issue in issues)


def test_audit_clean_state():
    player = PlayerRecord(player_id="p1", tenant_id="t1", name="A", status=PlayerStatus.SOLD, team_id="team", sold_amount=30)
    team = _team(filled_slots=1, player_ids=["p1"], budget=100, remaining_budget=70)

    assert ledger.audit([player], [team]) == []


def test_decimal_balances_settle_without_drift():
    team = _team(total_slots=3, budget=0.3, remaining_budget=0.3)

    team = ledger.add_member(team, "p1", 0.1)
    assert team.remaining_budget == 0.2
    team = ledger.add_member(team, "p2", 0.2)
    assert team.remaining_budget == 0.0

    refunded = ledger.remove_member(team, "p2", 0.2)
    assert ledger.adjust_spend(refunded, 0.2).remaining_budget == 0.0
    with pytest.raises(InsufficientBudget):
        ledger.adjust_spend(refunded, 0.2001)
