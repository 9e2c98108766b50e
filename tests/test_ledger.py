import pytest

from conftest import make_proposal
from proposal_acceptance.ledger import SelectionLedger


def seeded() -> SelectionLedger:
    services = make_proposal().services
    services[2].client_notes = "online please"
    return SelectionLedger.seed(services)


def test_seed_selects_everything_and_keeps_prior_notes():
    ledger = seeded()

    assert ledger.keys() == [1, 2, 3]
    assert ledger.all_selected()
    assert not ledger.some_selected()
    assert ledger.selected_count() == 3
    assert ledger.note(3) == "online please"
    assert ledger.note(1) == ""


def test_toggle_drives_tri_state_queries():
    ledger = seeded()

    assert ledger.toggle(2) is False
    assert ledger.some_selected()
    assert not ledger.all_selected()
    assert ledger.selected_count() == 2

    assert ledger.toggle(2) is True
    assert ledger.all_selected()


def test_set_all_clears_and_restores_selection():
    ledger = seeded()

    ledger.set_all(False)
    assert ledger.selected_count() == 0
    assert not ledger.has_selection()
    assert not ledger.some_selected()

    ledger.set_all(True)
    assert ledger.all_selected()


def test_entries_reflect_flags_and_notes():
    ledger = seeded()
    ledger.toggle(1)
    ledger.set_note(2, "two sessions")

    entries = {entry.service_id: entry for entry in ledger.entries()}
    assert entries[1].selected is False
    assert entries[2].client_notes == "two sessions"
    assert entries[3].selected is True


def test_unknown_line_item_is_rejected():
    ledger = seeded()

    with pytest.raises(KeyError):
        ledger.toggle(42)
    with pytest.raises(KeyError):
        ledger.set_note(42, "x")
    assert not ledger.is_selected(42)


def test_empty_ledger_is_never_all_selected():
    ledger = SelectionLedger()

    assert not ledger.all_selected()
    assert ledger.selected_count() == 0
