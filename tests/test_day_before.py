from datetime import datetime, time, timedelta

import pytest
from conftest import NOW, TARGET_DATE

from ascready.models import CaseReadinessCache, PreferenceCard
from ascready.services.day_before import aggregate, calendar_summary, sterility_cutoff
from ascready.services.errors import NotFound
from ascready.services.inventory_events import record_event
from ascready.utils.timezone import utcnow


@pytest.fixture
def schedule(db, make, facility):
    """Three cases tomorrow: ORANGE (one unverified unit), RED (nothing on the shelf), GREEN (no card)."""
    kit = make.catalog_item(facility, name="Kit")
    scope = make.catalog_item(facility, name="Scope", criticality="CRITICAL")
    unit = make.instance(kit)

    c1 = make.case(facility, make.card(facility, [{"catalog_id": kit.id, "quantity": 1}]),
                   scheduled_time=time(7, 0))
    c2 = make.case(facility, make.card(facility, [{"catalog_id": scope.id, "quantity": 1}]),
                   scheduled_time=time(9, 0))
    c3 = make.case(facility, scheduled_time=time(11, 0))
    db.commit()
    return {"kit": kit, "scope": scope, "unit": unit, "cases": [c1, c2, c3]}


@pytest.fixture
def evaluated(monkeypatch):
    """Start recording which case ids reach the calculator; returns the live list."""
    from ascready.services import day_before

    def start():
        calls = []
        real = day_before.evaluate_inputs

        def counting(inputs, as_of, policy):
            calls.append(inputs.case.id)
            return real(inputs, as_of, policy)

        monkeypatch.setattr(day_before, "evaluate_inputs", counting)
        return calls

    return start


def test_rollup_states_and_summary(db, facility, schedule):
    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)

    assert [c["readinessState"] for c in res.cases] == ["ORANGE", "RED", "GREEN"]
    assert res.summary == {
        "total": 3, "green": 1, "orange": 1, "red": 1, "attested": 0, "failed": 0}
    assert res.errors == []
    assert db.query(CaseReadinessCache).count() == 3


def test_closed_and_inactive_cases_excluded(db, make, facility, schedule):
    make.case(facility, status="CANCELLED")
    make.case(facility, status="COMPLETED")
    make.case(facility, is_active=False)
    make.case(facility, scheduled_date=TARGET_DATE + timedelta(days=1))
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert res.summary["total"] == 3


def test_deleted_card_isolated_as_error_marker(db, facility, schedule):
    c1, c2, c3 = schedule["cases"]
    card = db.get(PreferenceCard, c2.preference_card_id)
    card.deleted_at = utcnow()
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)

    assert [c["caseId"] for c in res.cases] == [c1.id, c3.id]
    assert [(e.case_id, e.code) for e in res.errors] == [(c2.id, "REQUIREMENTS_UNRESOLVABLE")]
    assert res.summary["total"] == 2
    assert res.summary["failed"] == 1
    assert res.summary["red"] == 0


def test_calculation_failure_isolated(db, facility, schedule, monkeypatch):
    from ascready.services import day_before

    c1, c2, c3 = schedule["cases"]
    real = day_before.evaluate_inputs

    def flaky(inputs, as_of, policy):
        if inputs.case.id == c1.id:
            raise RuntimeError("boom")
        return real(inputs, as_of, policy)

    monkeypatch.setattr(day_before, "evaluate_inputs", flaky)
    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)

    assert [c["caseId"] for c in res.cases] == [c2.id, c3.id]
    assert res.errors[0].case_id == c1.id
    assert res.errors[0].code == "CALCULATION_FAILED"


def test_cache_reused_until_inventory_changes(db, facility, schedule, evaluated):
    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    calls = evaluated()

    again = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert calls == []
    assert again.from_cache
    assert [c["readinessState"] for c in again.cases] == ["ORANGE", "RED", "GREEN"]

    # a MISSING event on the only kit unit invalidates case 1 only
    record_event(db, instance=schedule["unit"], event_type="MISSING")
    db.commit()

    after = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert calls == [schedule["cases"][0].id]
    assert after.cases[0]["readinessState"] == "RED"


def test_refresh_recomputes_everything(db, facility, schedule, evaluated):
    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    calls = evaluated()
    res = aggregate(db, facility.id, TARGET_DATE, refresh=True, now=NOW)

    assert sorted(calls) == sorted(c.id for c in schedule["cases"])
    assert not res.from_cache


def test_sterility_cutoff_is_start_of_target_day():
    assert sterility_cutoff(TARGET_DATE, "UTC", NOW).date() == TARGET_DATE
    later = NOW + timedelta(days=5)
    assert sterility_cutoff(TARGET_DATE, "UTC", later) == later


def test_unknown_facility(db):
    with pytest.raises(NotFound):
        aggregate(db, 999, TARGET_DATE, now=NOW)


def test_calendar_summary_counts_uncached_as_orange(db, facility, schedule):
    days = calendar_summary(db, facility.id, TARGET_DATE, TARGET_DATE)["days"]
    assert days == [{"date": TARGET_DATE.isoformat(), "caseCount": 3,
                     "greenCount": 0, "orangeCount": 3, "redCount": 0}]

    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    days = calendar_summary(db, facility.id, TARGET_DATE, TARGET_DATE)["days"]
    assert days[0]["greenCount"] == 1
    assert days[0]["redCount"] == 1

    cases = calendar_summary(db, facility.id, TARGET_DATE, TARGET_DATE, "case")["cases"]
    assert [c["readinessState"] for c in cases] == ["ORANGE", "RED", "GREEN"]


def test_calendar_skips_inactive_cases(db, make, facility, schedule):
    make.case(facility, is_active=False)
    db.commit()

    days = calendar_summary(db, facility.id, TARGET_DATE, TARGET_DATE)["days"]
    cases = calendar_summary(db, facility.id, TARGET_DATE, TARGET_DATE, "case")["cases"]

    assert days[0]["caseCount"] == 3
    assert [c["caseId"] for c in cases] == [c.id for c in schedule["cases"]]


# ---------- cache invalidation ----------
def test_case_edit_invalidates_that_case(db, facility, schedule, evaluated):
    c1, c2, c3 = schedule["cases"]
    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    calls = evaluated()

    c2.procedure_name = "Knee Arthroscopy"
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert calls == [c2.id]
    assert not res.from_cache


def test_requirement_override_invalidates_that_case(db, make, facility, schedule, evaluated):
    c1 = schedule["cases"][0]
    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    calls = evaluated()

    make.override(c1, schedule["kit"], 2)
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert calls == [c1.id]
    assert res.cases[0]["totalRequiredItems"] == 2


def test_attestations_invalidate_their_cases(db, admin, facility, schedule, evaluated):
    from ascready.services import attestation_service

    c1, c2, c3 = schedule["cases"]
    aggregate(db, facility.id, TARGET_DATE, now=NOW)
    calls = evaluated()

    attestation_service.attest(db, c3.id, "CASE_READINESS", admin.id,
                               facility_id=facility.id, now=NOW)
    attestation_service.attest(db, c2.id, "SURGEON_ACKNOWLEDGMENT", admin.id,
                               facility_id=facility.id, now=NOW)

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert sorted(calls) == sorted([c2.id, c3.id])
    assert res.summary["attested"] == 1
    row = db.get(CaseReadinessCache, c2.id)
    assert row.surgeon_acknowledgment_id is not None


def test_catalog_edit_invalidates_cached_state(db, make, facility, evaluated):
    plate = make.catalog_item(facility, name="Plate")
    make.instance(plate)
    case = make.case(facility, make.card(facility, [{"catalog_id": plate.id, "quantity": 2}]))
    db.commit()

    assert aggregate(db, facility.id, TARGET_DATE, now=NOW).cases[0]["readinessState"] == "ORANGE"
    calls = evaluated()

    plate.criticality = "CRITICAL"
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert calls == [case.id]
    assert res.cases[0]["readinessState"] == "RED"
    assert not res.from_cache


def test_tracking_flag_edit_invalidates_cached_state(db, facility, schedule):
    aggregate(db, facility.id, TARGET_DATE, now=NOW)

    # the only kit unit carries no lot number
    schedule["kit"].requires_lot_tracking = True
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert res.cases[0]["readinessState"] == "RED"


def test_policy_switch_invalidates_cached_state(db, facility, schedule):
    schedule["unit"].last_verified_at = NOW
    db.commit()
    assert aggregate(db, facility.id, TARGET_DATE, now=NOW).cases[0]["readinessState"] == "ORANGE"

    facility.verification_policy = "FRESHNESS"
    db.commit()

    res = aggregate(db, facility.id, TARGET_DATE, now=NOW)
    assert res.cases[0]["readinessState"] == "GREEN"
    assert not res.from_cache


def _day(hour):
    return datetime.combine(TARGET_DATE, time(hour, 0))


def test_sterility_expiry_between_runs_invalidates(db, make, facility, evaluated):
    gown = make.catalog_item(facility, name="Gown Pack", requires_sterility=True)
    make.instance(gown, sterility_expires_at=_day(5))
    case = make.case(facility, make.card(facility, [{"catalog_id": gown.id, "quantity": 1}]))
    db.commit()

    assert aggregate(db, facility.id, TARGET_DATE, now=_day(2)).cases[0]["readinessState"] == "ORANGE"
    calls = evaluated()

    # clock moves but the unit is still sterile: reuse
    assert aggregate(db, facility.id, TARGET_DATE, now=_day(4)).from_cache
    assert calls == []

    res = aggregate(db, facility.id, TARGET_DATE, now=_day(6))
    assert calls == [case.id]
    assert res.cases[0]["readinessState"] == "RED"


def test_freshness_window_end_between_runs_invalidates(db, make, facility, evaluated):
    facility.verification_policy = "FRESHNESS"
    facility.verification_freshness_hours = 72
    tray = make.catalog_item(facility, name="Tray")
    make.instance(tray, last_verified_at=_day(0) - timedelta(hours=71))
    case = make.case(facility, make.card(facility, [{"catalog_id": tray.id, "quantity": 1}]))
    db.commit()

    assert aggregate(db, facility.id, TARGET_DATE, now=NOW).cases[0]["readinessState"] == "GREEN"
    calls = evaluated()

    res = aggregate(db, facility.id, TARGET_DATE, now=_day(2))
    assert calls == [case.id]
    assert res.cases[0]["readinessState"] == "ORANGE"
