from datetime import datetime, timedelta

import pytest
from conftest import NOW, plain_item, plain_unit

from ascready.services.risk_queue import (
    RiskRule,
    RiskSeverity,
    build_risk_queue,
    days_until,
    evaluate,
    sort_entries,
)


def _rules(entries):
    return sorted((e.rule, e.severity) for e in entries)


def test_missing_tracking_fields_are_red():
    item = plain_item(requires_lot_tracking=True, requires_serial_tracking=True,
                      requires_expiration_tracking=True)
    entries = evaluate(plain_unit(1), item, NOW, default_warning_days=30, orange_days=7)

    assert _rules(entries) == sorted([
        (RiskRule.MISSING_LOT, RiskSeverity.RED),
        (RiskRule.MISSING_SERIAL, RiskSeverity.RED),
        (RiskRule.MISSING_EXPIRATION, RiskSeverity.RED),
    ])
    lot = next(e for e in entries if e.rule == RiskRule.MISSING_LOT)
    assert lot.missing_fields == ("lotNumber",)


def test_expired_is_red():
    unit = plain_unit(1, sterility_expires_at=NOW - timedelta(days=2))
    entries = evaluate(unit, plain_item(), NOW, default_warning_days=30, orange_days=7)
    assert _rules(entries) == [(RiskRule.EXPIRED, RiskSeverity.RED)]
    assert entries[0].days_to_expire == -2


@pytest.mark.parametrize("days,expected", [
    (3, RiskSeverity.ORANGE),
    (7, RiskSeverity.ORANGE),
    (8, RiskSeverity.YELLOW),
    (30, RiskSeverity.YELLOW),
])
def test_expiring_soon_severity(days, expected):
    unit = plain_unit(1, sterility_expires_at=NOW + timedelta(days=days))
    entries = evaluate(unit, plain_item(), NOW, default_warning_days=30, orange_days=7)
    assert _rules(entries) == [(RiskRule.EXPIRING_SOON, expected)]


def test_outside_warning_window_is_clean():
    unit = plain_unit(1, sterility_expires_at=NOW + timedelta(days=31))
    assert evaluate(unit, plain_item(), NOW, default_warning_days=30, orange_days=7) == []


def test_catalog_warning_days_override_facility_default():
    unit = plain_unit(1, sterility_expires_at=NOW + timedelta(days=20))
    item = plain_item(expiration_warning_days=10)
    assert evaluate(unit, item, NOW, default_warning_days=30, orange_days=7) == []


def test_instance_can_carry_several_risks():
    item = plain_item(requires_lot_tracking=True)
    unit = plain_unit(1, sterility_expires_at=NOW + timedelta(days=5))
    entries = evaluate(unit, item, NOW, default_warning_days=30, orange_days=7)
    assert {e.rule for e in entries} == {RiskRule.MISSING_LOT, RiskRule.EXPIRING_SOON}


@pytest.mark.parametrize("status", ["DISPOSED", "IN_USE"])
def test_terminal_units_excluded(status):
    item = plain_item(requires_lot_tracking=True)
    unit = plain_unit(1, availability_status=status)
    assert evaluate(unit, item, NOW, default_warning_days=30, orange_days=7) == []


def test_days_until_rounds_up():
    assert days_until(NOW + timedelta(days=3, hours=2), NOW) == 4
    assert days_until(NOW + timedelta(days=3), NOW) == 3


def test_sort_order():
    a = plain_item(id=1, name="Alpha")
    b = plain_item(id=2, name="Bravo", requires_lot_tracking=True)
    soon = evaluate(plain_unit(1, sterility_expires_at=NOW + timedelta(days=2)), a, NOW,
                    default_warning_days=30, orange_days=7)
    later = evaluate(plain_unit(1, sterility_expires_at=NOW + timedelta(days=20)), a, NOW,
                     default_warning_days=30, orange_days=7)
    red = evaluate(plain_unit(2, lot_number=None), b, NOW,
                   default_warning_days=30, orange_days=7)

    ordered = sort_entries(later + soon + red)

    assert [e.severity for e in ordered] == [
        RiskSeverity.RED, RiskSeverity.ORANGE, RiskSeverity.YELLOW]


def test_build_risk_queue_from_database(db, make, facility):
    screws = make.catalog_item(facility, name="Hip Screw Kit", requires_lot_tracking=True)
    drape = make.catalog_item(facility, name="Drape")
    retired = make.catalog_item(facility, name="Old Tray", is_active=False,
                                requires_lot_tracking=True)

    flagged = make.instance(screws, lot_number=None)
    make.instance(screws, lot_number="L-1")
    make.instance(drape, sterility_expires_at=NOW + timedelta(days=3))
    make.instance(screws, lot_number=None, availability_status="DISPOSED")
    make.instance(retired, lot_number=None)
    db.commit()

    queue = build_risk_queue(db, facility.id, NOW)

    assert [(e.rule, e.catalog_name) for e in queue] == [
        (RiskRule.MISSING_LOT, "Hip Screw Kit"),
        (RiskRule.EXPIRING_SOON, "Drape"),
    ]
    assert queue[0].inventory_instance_id == flagged.id

    only_red = build_risk_queue(db, facility.id, NOW, severity=RiskSeverity.RED)
    assert [e.rule for e in only_red] == [RiskRule.MISSING_LOT]
