import json
from datetime import datetime, timezone

import pytest

from conftest import NOW, load_fixture, make_proposal
from proposal_acceptance.models.proposal import Proposal, ProposalLineItem, ProposalStatus


def test_fixture_proposal_parses_line_items():
    proposal = Proposal.model_validate(load_fixture("demo-sent"))

    assert proposal.status is ProposalStatus.sent
    assert [item.total for item in proposal.services] == [500.0, 300.0, 200.0]
    assert proposal.client.company.trade_name == "Construtora Horizonte"


def test_unit_value_prefers_custom_then_proposal_then_catalog():
    custom = ProposalLineItem.model_validate(
        {"service_id": 1, "custom_value": 90, "unit_value": 80, "service": {"value": 70}}
    )
    per_proposal = ProposalLineItem.model_validate({"service_id": 1, "unit_value": 80, "service": {"value": 70}})
    catalog = ProposalLineItem.model_validate({"service_id": 1, "service": {"value": 70}})
    nothing = ProposalLineItem.model_validate({"service_id": 1})

    assert custom.unit_value == 90
    assert per_proposal.unit_value == 80
    assert catalog.unit_value == 70
    assert nothing.unit_value == 0


def test_line_total_uses_server_total_when_present():
    item = ProposalLineItem.model_validate(
        {"service_id": 1, "quantity": 3, "unit_value": 100, "total_value": 250}
    )
    computed = ProposalLineItem.model_validate({"service_id": 1, "quantity": 3, "unit_value": 100})

    assert item.total == 250
    assert computed.total == 300


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 12), ("abc", 12), (0, 12), (-3, 1), (7.5, 12), (float("inf"), 12), (float("nan"), 12),
        (1, 1), (6, 6), ("9", 9), (18, 18), (40, 18),
    ],
)
def test_max_installments_is_clamped(raw, expected):
    assert make_proposal(max_installments=raw).max_installments == expected


def test_end_date_takes_precedence_over_valid_until():
    proposal = make_proposal(valid_until="2099-01-01", end_date="2020-01-01")

    assert proposal.expires_at == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert proposal.is_expired(NOW)


def test_expiry_and_days_remaining():
    open_proposal = make_proposal(valid_until="2025-11-04")
    closed = make_proposal(valid_until="2025-10-01T08:00:00")
    undated = make_proposal(valid_until=None)

    assert not open_proposal.is_expired(NOW)
    assert open_proposal.days_until_expiration(NOW) == 3
    assert closed.is_expired(NOW)
    assert closed.days_until_expiration(NOW) == 0
    assert not undated.is_expired(NOW)
    assert undated.days_until_expiration(NOW) is None


def test_status_labels_and_unknown_status():
    assert make_proposal(status="contraproposta").status_label == "Contraproposta"
    with pytest.raises(ValueError):
        make_proposal(status="archived")


def test_recruitment_percentages_fall_back_to_defaults():
    recruitment = Proposal.model_validate(load_fixture("demo-recruitment"))
    plain = make_proposal()

    assert recruitment.is_recruitment
    assert recruitment.recruitment_percentage("comercial") == 85
    assert plain.recruitment_percentage("operacional") == 70
    assert plain.recruitment_percentage("estagio_jovem") == 100


def test_line_item_lookup():
    proposal = make_proposal()

    assert proposal.line_item(2).name == "Workshop"
    with pytest.raises(KeyError):
        proposal.line_item(99)


def test_line_item_without_catalog_service():
    proposal = make_proposal(
        services=[
            {"service_id": 5, "quantity": 1, "total_value": 100, "service": None},
            {"service_id": 6, "quantity": 2, "service": None},
        ]
    )

    priced, unpriced = proposal.services
    assert priced.name == ""
    assert priced.total == 100
    assert unpriced.unit_value == 0
    assert unpriced.total == 0


def test_overflowing_installment_limit_from_json():
    data = load_fixture("demo-sent")
    raw = json.dumps(data).replace('"max_installments": 6', '"max_installments": 1e400')

    assert Proposal.model_validate(json.loads(raw)).max_installments == 12
