"""
Work Item Generator
===================

Expands one WipLot into the WorkItems of every bundle it defines.

For each article, each roll and each size with a nonzero ratio the lot
yields one bundle of ``ratio x roll.layer_count`` pieces. Each bundle gets
one WorkItem per step of its garment's operation template, with the
template's operation-name dependencies translated into WorkItem ids of the
same bundle.

Bundles that cannot be built (missing or malformed ratio, empty roll) are
skipped and reported; generation never aborts the whole lot over them.
"""

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..catalog import OperationCatalog, OperationStep
from ..config import EngineConfig
from ..models import ArticleConfig, Roll, WipLot, WorkItem, WorkItemStatus
from .routing import resolve_template_dependencies, validate_lot_dependencies

logger = logging.getLogger(__name__)

_DELIMITERS = re.compile(r"[:,;|]")


def parse_smart_input(value: Any) -> List[str]:
    """Split a size or ratio list typed in any of the intake formats.

    Accepts a list, or a string using ``:``, ``,``, ``;`` or ``|`` as
    separators ("S:M:L", "S, M, L", "1|2|1"). Tokens are trimmed and empty
    tokens dropped.
    """
    if value is None:
        return []
    parts = value if isinstance(value, (list, tuple)) else [value]
    tokens = []
    for part in parts:
        for token in _DELIMITERS.split(str(part)):
            token = token.strip()
            if token:
                tokens.append(token)
    return tokens


def parse_ratio(token: str) -> Optional[int]:
    """Whole, non-negative ratio or None when the token is malformed."""
    try:
        value = float(token)
    except (TypeError, ValueError):
        return None
    if value < 0 or value != int(value):
        return None
    return int(value)


def bundle_key(lot_number: str, article: str, size: str, color: str, roll_number: int) -> str:
    return f"{lot_number}-{article}-{size}-{color}-{roll_number}"


def work_item_id(bundle_id: str, step_index: int, operation: str) -> str:
    return f"{bundle_id}:{step_index:02d}:{operation}"


class BundleSummary(BaseModel):
    bundle_id: str
    workflow_id: str
    article: str
    size: str
    color: str
    roll_number: int
    pieces: int
    garment_type: Optional[str] = None
    operations: int = 0


class SkippedBundle(BaseModel):
    article: str
    size: str
    color: str = ""
    roll_number: Optional[int] = None
    reason: str


class GenerationReport(BaseModel):
    """Everything one generate() call produced for a lot."""
    lot: WipLot
    work_items: List[WorkItem] = Field(default_factory=list)
    bundles: List[BundleSummary] = Field(default_factory=list)
    pieces_by_size: Dict[str, int] = Field(default_factory=dict)
    pieces_by_roll: Dict[int, int] = Field(default_factory=dict)
    skipped: List[SkippedBundle] = Field(default_factory=list)

    @property
    def total_pieces(self) -> int:
        return sum(b.pieces for b in self.bundles)


class WorkItemGenerator:
    """Materializes catalog templates into per-bundle WorkItem DAGs."""

    def __init__(self, catalog: OperationCatalog, config: EngineConfig):
        self.catalog = catalog
        self.config = config

    def template_for(self, article: ArticleConfig) -> tuple:
        """Resolve an article's garment type and operation template.

        Unknown garment types get the single-step fallback template so a
        bundle never ends up with zero operations.
        """
        garment_type = article.garment_type or self.catalog.detect_garment_type(article.style_name)
        steps = self.catalog.operations_for(garment_type)
        if not steps:
            logger.info(
                "No template for article %s (garment type %r), using %s",
                article.article_number, garment_type, self.config.fallback_operation,
            )
            steps = [OperationStep(
                operation=self.config.fallback_operation,
                machine=self.config.fallback_machine,
                sequence=1,
                estimated_time=self.config.fallback_estimated_time,
            )]
        return garment_type, steps

    def generate(self, lot: WipLot) -> GenerationReport:
        """Expand *lot* into WorkItems.

        Returns:
            GenerationReport whose ``lot`` carries the derived roll piece
            counts. Nothing is persisted here.

        Raises:
            CycleDetected: a template resolved into a cyclic bundle graph.
        """
        lot = lot.model_copy(deep=True)
        report = GenerationReport(lot=lot)
        pieces_by_size: Dict[str, int] = defaultdict(int)
        pieces_by_roll: Dict[int, int] = defaultdict(int)
        seen_bundles = set()
        position = 0

        for article in lot.articles:
            sizes = parse_smart_input(article.sizes)
            ratios = parse_smart_input(article.ratios)
            if len(sizes) != len(ratios):
                logger.warning(
                    "Lot %s article %s: %d sizes but %d ratios",
                    lot.lot_number, article.article_number, len(sizes), len(ratios),
                )
            garment_type, steps = self.template_for(article)
            dep_index = resolve_template_dependencies(steps)

            for roll in lot.rolls:
                for i, size in enumerate(sizes):
                    reason = None
                    ratio = None
                    if i >= len(ratios):
                        reason = f"no ratio for size {size} ({len(sizes)} sizes, {len(ratios)} ratios)"
                    else:
                        ratio = parse_ratio(ratios[i])
                        if ratio is None:
                            reason = f"malformed ratio {ratios[i]!r} for size {size}"
                    if reason is None and ratio == 0:
                        continue
                    if reason is None and roll.layer_count == 0:
                        reason = f"roll {roll.roll_number} has no layers"

                    bundle_id = bundle_key(
                        lot.lot_number, article.article_number, size, roll.color, roll.roll_number,
                    )
                    if reason is None and bundle_id in seen_bundles:
                        reason = f"duplicate bundle {bundle_id}"
                    if reason is not None:
                        logger.warning("Lot %s: skipping bundle: %s", lot.lot_number, reason)
                        report.skipped.append(SkippedBundle(
                            article=article.article_number, size=size,
                            color=roll.color, roll_number=roll.roll_number, reason=reason,
                        ))
                        continue

                    seen_bundles.add(bundle_id)
                    pieces = ratio * roll.layer_count
                    items = self._bundle_items(
                        lot, article, roll, size, pieces, bundle_id,
                        garment_type, steps, dep_index, position,
                    )
                    position += len(items)
                    report.work_items.extend(items)
                    report.bundles.append(BundleSummary(
                        bundle_id=bundle_id,
                        workflow_id=items[0].workflow_id,
                        article=article.article_number,
                        size=size,
                        color=roll.color,
                        roll_number=roll.roll_number,
                        pieces=pieces,
                        garment_type=garment_type,
                        operations=len(items),
                    ))
                    pieces_by_size[size] += pieces
                    pieces_by_roll[roll.roll_number] += pieces

        for roll in lot.rolls:
            roll.pieces = pieces_by_roll.get(roll.roll_number, 0)
        report.pieces_by_size = dict(pieces_by_size)
        report.pieces_by_roll = dict(pieces_by_roll)

        validate_lot_dependencies(report.work_items)

        logger.info(
            "Lot %s: generated %d work items in %d bundles (%d pieces, %d skipped)",
            lot.lot_number, len(report.work_items), len(report.bundles),
            report.total_pieces, len(report.skipped),
        )
        return report

    def _bundle_items(
        self,
        lot: WipLot,
        article: ArticleConfig,
        roll: Roll,
        size: str,
        pieces: int,
        bundle_id: str,
        garment_type: Optional[str],
        steps: List[OperationStep],
        dep_index: List[List[int]],
        position: int,
    ) -> List[WorkItem]:
        ids = [work_item_id(bundle_id, idx, step.operation) for idx, step in enumerate(steps)]
        dependents: Dict[int, List[str]] = defaultdict(list)
        for idx, deps in enumerate(dep_index):
            for j in deps:
                dependents[j].append(ids[idx])

        items = []
        for idx, step in enumerate(steps):
            dependencies = [ids[j] for j in dep_index[idx]]
            items.append(WorkItem(
                id=ids[idx],
                lot_number=lot.lot_number,
                article=article.article_number,
                article_name=article.style_name,
                size=size,
                color=roll.color,
                roll_number=roll.roll_number,
                pieces=pieces,
                bundle_id=bundle_id,
                workflow_id=f"WF-{bundle_id}",
                garment_type=garment_type,
                operation=step.operation,
                machine_type=step.machine,
                estimated_time=step.estimated_time,
                operation_sequence=step.sequence,
                workflow_type=step.workflow_type,
                parallel_group=step.parallel_group,
                dependencies=dependencies,
                sequence_position=float(position + idx + 1),
                predecessors=list(dependencies),
                successors=dependents[idx],
                status=WorkItemStatus.PENDING if dependencies else WorkItemStatus.READY,
            ))
        return items


__all__ = [
    "parse_smart_input",
    "parse_ratio",
    "bundle_key",
    "work_item_id",
    "BundleSummary",
    "SkippedBundle",
    "GenerationReport",
    "WorkItemGenerator",
]
