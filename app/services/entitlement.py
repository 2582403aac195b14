"""Entitlement gate: decides how much of a scan result a viewer may see."""

from sqlalchemy.orm import Session

from app.models import ScanCredit
from app.schemas.entitlement import UNLIMITED_TIER, EntitlementRecord
from app.schemas.scan import GatedAdvisories, GatedFindings, GatedScanResult, ScanResult

# Items per category shown without full access.
FREE_ITEMS_PER_CATEGORY = 1


def get_entitlement(db: Session, viewer_id: str) -> EntitlementRecord | None:
    """Read the viewer's entitlement record; None when billing has no row for them."""
    row = db.get(ScanCredit, viewer_id)
    if row is None:
        return None
    return EntitlementRecord(
        viewer_id=row.viewer_id,
        credits_remaining=row.credits_remaining,
        tier=row.package_type,
    )


def is_entitled(record: EntitlementRecord | None) -> bool:
    """Full access when credits remain or the viewer is on the unlimited tier."""
    if record is None:
        return False
    return record.credits_remaining > 0 or record.tier == UNLIMITED_TIER


def filter_result(result: ScanResult, entitled: bool) -> GatedScanResult:
    """
    Render a result for one viewer.

    Without entitlement each category keeps only its first item; totals are always
    the true counts. The input result is not modified.
    """
    limit = None if entitled else FREE_ITEMS_PER_CATEGORY

    def gate_findings(items: list) -> GatedFindings:
        visible = list(items if limit is None else items[:limit])
        return GatedFindings(items=visible, total=len(items), hidden=len(items) - len(visible))

    dependencies = list(
        result.dependencies if limit is None else result.dependencies[:limit]
    )
    return GatedScanResult(
        full_access=entitled,
        secrets=gate_findings(result.secrets),
        insecure_patterns=gate_findings(result.insecure_patterns),
        dependencies=GatedAdvisories(
            items=dependencies,
            total=len(result.dependencies),
            hidden=len(result.dependencies) - len(dependencies),
        ),
    )
