# FILE: ascready/services/case_requirements.py
from __future__ import annotations

import hashlib
import json
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ascready.models.catalog import CatalogItem
from ascready.models.surgical_case import (
    CaseRequirementOverride,
    PreferenceCard,
    PreferenceCardVersion,
    SurgicalCase,
)
from ascready.schemas.preference_card import CardContent
from ascready.services.errors import NotFound, RequirementResolutionError
from ascready.services.readiness_types import Requirement

logger = logging.getLogger(__name__)


def _card_version(db: Session, case: SurgicalCase) -> Optional[PreferenceCardVersion]:
    if case.preference_card_id is None:
        return None

    card = db.get(PreferenceCard, case.preference_card_id)
    if card is None or card.deleted_at is not None:
        raise RequirementResolutionError(
            f"Preference card {case.preference_card_id} linked to case {case.id} was deleted")
    if not card.is_active:
        raise RequirementResolutionError(
            f"Preference card {card.id} linked to case {case.id} is inactive")
    if card.current_version_id is None:
        raise RequirementResolutionError(
            f"Preference card {card.id} has no current version")

    version = db.get(PreferenceCardVersion, card.current_version_id)
    if version is None:
        raise RequirementResolutionError(
            f"Preference card {card.id} current version is missing")
    return version


def parse_card_items(raw_sections) -> List[Tuple[int, int, Optional[bool]]]:
    """Flatten validated card sections into (catalog_id, quantity, sterility) rows."""
    payload = raw_sections if isinstance(raw_sections, dict) else {"sections": raw_sections or []}
    try:
        content = CardContent.model_validate(payload)
    except ValidationError as e:
        raise RequirementResolutionError(
            "Preference card sections are malformed",
            details=e.errors(include_url=False),
        ) from e

    rows: List[Tuple[int, int, Optional[bool]]] = []
    for section in content.sections:
        for item in section.items:
            rows.append((item.catalog_id, item.quantity, item.requires_sterility))
    return rows


def merge_requirements(
    card_rows: Iterable[Tuple[int, int, Optional[bool]]],
    overrides: Iterable[CaseRequirementOverride],
    catalog: Dict[int, CatalogItem],
) -> List[Requirement]:
    qty: Dict[int, int] = {}
    sterile: Dict[int, Optional[bool]] = {}

    # same catalog id in several sections: quantities add up, sterility OR-ed
    for catalog_id, quantity, req_sterile in card_rows:
        qty[catalog_id] = qty.get(catalog_id, 0) + int(quantity)
        prev = sterile.get(catalog_id)
        if req_sterile is None:
            sterile[catalog_id] = prev
        else:
            sterile[catalog_id] = bool(prev) or req_sterile

    for ov in overrides:
        if ov.quantity <= 0:
            qty.pop(ov.catalog_id, None)
            sterile.pop(ov.catalog_id, None)
            continue
        qty[ov.catalog_id] = int(ov.quantity)
        if ov.requires_sterility is not None:
            sterile[ov.catalog_id] = ov.requires_sterility
        else:
            sterile.setdefault(ov.catalog_id, None)

    out: List[Requirement] = []
    for catalog_id in sorted(qty):
        item = catalog.get(catalog_id)
        if item is not None and not item.readiness_required:
            continue
        flag = sterile.get(catalog_id)
        if flag is None:
            flag = bool(item.requires_sterility) if item is not None else False
        out.append(Requirement(
            catalog_id=catalog_id,
            required_quantity=qty[catalog_id],
            requires_sterility=flag,
        ))
    return out


def resolve_requirements(db: Session, case_or_id) -> List[Requirement]:
    """
    Flattened requirement set of a case: current card version + case overrides.
    A case without a linked card has no requirements.
    """
    case = case_or_id
    if not isinstance(case_or_id, SurgicalCase):
        case = db.get(SurgicalCase, case_or_id)
        if case is None:
            raise NotFound(f"Case {case_or_id} not found")

    version = _card_version(db, case)
    card_rows = parse_card_items(version.sections) if version is not None else []
    overrides = list(case.overrides or [])

    ids = {r[0] for r in card_rows} | {o.catalog_id for o in overrides}
    catalog = load_catalog(db, ids)

    reqs = merge_requirements(card_rows, overrides, catalog)
    logger.debug("Case %s resolved %d requirement(s)", case.id, len(reqs))
    return reqs


def load_catalog(db: Session, catalog_ids: Iterable[int]) -> Dict[int, CatalogItem]:
    ids = sorted(set(catalog_ids))
    if not ids:
        return {}
    rows = db.query(CatalogItem).filter(CatalogItem.id.in_(ids)).all()
    return {c.id: c for c in rows}


def requirements_fingerprint(requirements: Iterable[Requirement]) -> str:
    blob = json.dumps(
        [[r.catalog_id, r.required_quantity, r.requires_sterility] for r in requirements],
        separators=(",", ":"),
    )
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()
