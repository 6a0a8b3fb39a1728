"""Internal link candidate selection from the item catalogue."""

from __future__ import annotations

from collections.abc import Iterable

from app.services.optimizer.collaborators import InternalLinkTarget
from app.services.optimizer.types import PageRecord


def build_internal_link_targets(
    pages: Iterable[PageRecord],
    *,
    exclude_id: str,
    limit: int = 50,
    min_title_length: int = 5,
) -> list[InternalLinkTarget]:
    """Pick link targets among other known items with a usable title.

    Catalogue order is kept; the target itself and items whose title is
    ``min_title_length`` characters or shorter are skipped.
    """
    targets: list[InternalLinkTarget] = []
    if limit <= 0:
        return targets
    for page in pages:
        if page.id == exclude_id:
            continue
        title = (page.title or "").strip()
        if len(title) <= min_title_length:
            continue
        targets.append(InternalLinkTarget(url=page.id, title=title, slug=page.slug))
        if len(targets) >= limit:
            break
    return targets
