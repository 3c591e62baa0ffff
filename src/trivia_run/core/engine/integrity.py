from __future__ import annotations

from typing import Any, Mapping

import orjson
import structlog
from pydantic import ValidationError

from trivia_run.catalog.models import Catalog
from trivia_run.core.run.state import Run

log = structlog.get_logger()

_MODULUS = 2147483647

NAVIGATION_REASON = "Navigation detected during a question. Run invalidated."
BACKGROUND_REASON = "Question interrupted while the tab was hidden. Run invalidated."
REFRESH_REASON = "Refresh detected during a question. Run invalidated."


def _canonical_payload(run: Run) -> dict[str, Any]:
    return {
        "run_id": run.run_id,
        "selected_category_ids": list(run.selected_category_ids),
        "categories_played": list(run.categories_played),
        "wins_count": run.wins_count,
        "category_results": dict(run.category_results),
        "action_counter": run.action_counter,
    }


def fingerprint(run: Run | None) -> str:
    """
    Position-weighted character sum over the canonical JSON of the run.

    Tamper evidence for casual edits only; there is no secret involved.
    """
    if run is None:
        return ""
    blob = orjson.dumps(_canonical_payload(run), option=orjson.OPT_SORT_KEYS).decode("utf-8")
    h = 0
    for i, ch in enumerate(blob):
        h = (h + ord(ch) * (i + 1)) % _MODULUS
    return f"{h:x}"


def stamp(run: Run) -> Run:
    """
    Final step of every accepted mutation: bump the counter, then re-hash.
    """
    bumped = run.model_copy(update={"action_counter": run.action_counter + 1})
    return bumped.model_copy(update={"state_hash": fingerprint(bumped)})


def verify(run: Run) -> bool:
    return bool(run.state_hash) and fingerprint(run) == run.state_hash


def references_catalog(run: Run, catalog: Catalog) -> bool:
    known = set(catalog.category_ids())
    return all(cid in known for cid in run.selected_category_ids) and all(
        cid in known for cid in run.remaining_category_ids
    )


def decode_run(raw: Mapping[str, Any] | None) -> tuple[Run | None, bool]:
    """
    Rebuild a persisted run and check its fingerprint.

    Returns (run, tampered). A blob that does not parse as a Run counts as
    tampered; a parsed run whose hash does not match is discarded.
    """
    if raw is None:
        return None, False

    try:
        run = Run.model_validate(raw)
    except ValidationError as exc:
        log.warning("integrity.run_unreadable", errors=exc.error_count())
        return None, True

    if not verify(run):
        log.warning(
            "integrity.fingerprint_mismatch",
            run_id=run.run_id,
            stored=run.state_hash,
            expected=fingerprint(run),
        )
        return None, True

    return run, False
