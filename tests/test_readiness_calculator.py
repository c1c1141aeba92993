from datetime import datetime, timedelta

from conftest import plain_item, plain_unit

from ascready.services.readiness_calculator import calculate, is_verified
from ascready.services.readiness_types import (
    MissingReason,
    ReadinessPolicy,
    ReadinessState,
    Requirement,
    VerificationMode,
)

AS_OF = datetime(2026, 3, 11, 0, 0)
CASE = 42

HIP_KIT = plain_item(
    id=1,
    name="Hip Screw Kit",
    criticality="CRITICAL",
    requires_sterility=True,
    requires_lot_tracking=True,
)


def _hip_pool(verify_a=False):
    a = plain_unit(1, lot_number="LOT-A")
    if verify_a:
        a.availability_status = "RESERVED"
        a.reserved_for_case_id = CASE
        a.last_verified_at = AS_OF - timedelta(hours=3)
    b = plain_unit(1, lot_number=None)
    c = plain_unit(1, lot_number="LOT-C", sterility_status="NON_STERILE")
    return a, b, c


def _calc(reqs, pool, catalog, policy=ReadinessPolicy()):
    return calculate(CASE, reqs, pool, AS_OF, catalog=catalog, policy=policy)


def test_hip_screw_kit_short_is_red():
    pool = _hip_pool()
    snap = _calc([Requirement(1, 2, requires_sterility=True)], pool, {1: HIP_KIT})

    assert snap.readiness_state == ReadinessState.RED
    assert snap.total_required_items == 2
    assert snap.total_verified_items == 0
    assert len(snap.missing_items) == 1
    missing = snap.missing_items[0]
    assert missing.available_quantity == 1
    assert missing.required_quantity == 2
    assert missing.reason == MissingReason.INSUFFICIENT_QUANTITY
    assert snap.lines[0].available_count == 1


def test_hip_screw_kit_verified_is_green():
    pool = _hip_pool(verify_a=True)
    snap = _calc([Requirement(1, 1, requires_sterility=True)], pool, {1: HIP_KIT})

    assert snap.readiness_state == ReadinessState.GREEN
    assert snap.total_verified_items == 1
    assert snap.missing_items == ()


def test_satisfied_but_unverified_is_orange():
    pool = _hip_pool()
    snap = _calc([Requirement(1, 1, requires_sterility=True)], pool, {1: HIP_KIT})
    assert snap.readiness_state == ReadinessState.ORANGE
    assert snap.missing_items == ()


def test_partial_non_critical_is_orange():
    gauze = plain_item(id=2, name="Gauze")
    snap = _calc([Requirement(2, 3)], [plain_unit(2)], {2: gauze})

    assert snap.readiness_state == ReadinessState.ORANGE
    assert snap.missing_items[0].reason == MissingReason.INSUFFICIENT_QUANTITY


def test_zero_suitable_non_critical_is_red():
    gauze = plain_item(id=2, name="Gauze")
    snap = _calc([Requirement(2, 1)], [], {2: gauze})
    assert snap.readiness_state == ReadinessState.RED


def test_zero_requirements_is_green():
    snap = _calc([], [plain_unit(1)], {1: HIP_KIT})
    assert snap.readiness_state == ReadinessState.GREEN
    assert snap.total_required_items == 0


def test_missing_reason_prefers_sterility_then_tracking():
    kit = plain_item(id=1, name="Kit", requires_lot_tracking=True)
    sterile_fail = _calc(
        [Requirement(1, 1, requires_sterility=True)],
        [plain_unit(1, lot_number="L", sterility_status="NON_STERILE"), plain_unit(1)],
        {1: kit},
    )
    tracking_fail = _calc([Requirement(1, 1)], [plain_unit(1)], {1: kit})

    assert sterile_fail.missing_items[0].reason == MissingReason.STERILITY_UNAVAILABLE
    assert tracking_fail.missing_items[0].reason == MissingReason.TRACKING_DATA_MISSING


def test_unknown_catalog_item_reported_missing():
    snap = _calc([Requirement(99, 1)], [], {})
    assert snap.readiness_state == ReadinessState.RED
    assert snap.missing_items[0].catalog_name == "Catalog item #99"


def test_verified_count_capped_at_required_quantity():
    item = plain_item(id=3, name="Clamp")
    pool = [plain_unit(3, availability_status="RESERVED", reserved_for_case_id=CASE,
                       last_verified_at=AS_OF) for _ in range(4)]
    snap = _calc([Requirement(3, 2)], pool, {3: item})
    assert snap.total_verified_items == 2
    assert snap.readiness_state == ReadinessState.GREEN


def test_freshness_policy_uses_window_not_binding():
    item = plain_item(id=3, name="Clamp")
    fresh = plain_unit(3, last_verified_at=AS_OF - timedelta(hours=10))
    stale = plain_unit(3, last_verified_at=AS_OF - timedelta(hours=100))
    policy = ReadinessPolicy(verification=VerificationMode.FRESHNESS, freshness_hours=72)

    snap = _calc([Requirement(3, 2)], [fresh, stale], {3: item}, policy)

    assert snap.total_verified_items == 1
    assert snap.readiness_state == ReadinessState.ORANGE
    assert is_verified(fresh, CASE, AS_OF, policy)
    assert not is_verified(fresh, CASE, AS_OF, ReadinessPolicy())


def test_calculation_is_deterministic():
    pool = list(_hip_pool())
    reqs = [Requirement(1, 2, requires_sterility=True), Requirement(2, 1)]
    catalog = {1: HIP_KIT, 2: plain_item(id=2, name="Gauze")}

    first = _calc(reqs, pool, catalog)
    second = _calc(list(reversed(reqs)), list(reversed(pool)), catalog)

    assert first == second


def test_adding_verified_unit_never_worsens_state():
    order = {ReadinessState.GREEN: 0, ReadinessState.ORANGE: 1, ReadinessState.RED: 2}
    catalog = {1: HIP_KIT}
    reqs = [Requirement(1, 2, requires_sterility=True)]
    pool = list(_hip_pool(verify_a=True))

    for _ in range(3):
        before = _calc(reqs, pool, catalog).readiness_state
        pool.append(plain_unit(1, lot_number="NEW", availability_status="RESERVED",
                               reserved_for_case_id=CASE, last_verified_at=AS_OF))
        after = _calc(reqs, pool, catalog).readiness_state
        assert order[after] <= order[before]


def test_critical_with_zero_available_is_always_red():
    catalog = {1: HIP_KIT, 2: plain_item(id=2, name="Gauze")}
    pool = [plain_unit(2, availability_status="RESERVED", reserved_for_case_id=CASE,
                       last_verified_at=AS_OF)]
    snap = _calc([Requirement(1, 1, requires_sterility=True), Requirement(2, 1)], pool, catalog)
    assert snap.readiness_state == ReadinessState.RED
