"""Barcode reconciliation between published annotations and matrix cells (Stage B).

Published identifiers carry a publication-specific prefix ahead of the
cell barcode, e.g. ``1_something_E13bm_AACCTTGG``. The rewrite rule strips
everything up to and including a marker substring and appends the
sample suffix, giving the matrix cell id ``AACCTTGG-1``. Identifiers that
do not contain the marker pass through unchanged and are reported as
mismatches; they usually fail to join.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..config import ReconciliationConfig
from ..exceptions import IdentifierMismatchError
from .cells import UNLABELED


@dataclass(frozen=True)
class RewriteRule:
    """Marker-strip + suffix rewrite for annotation identifiers."""

    marker: str = "E13bm_"
    suffix: str = "-1"

    @classmethod
    def from_config(cls, config: ReconciliationConfig) -> "RewriteRule":
        return cls(marker=config.marker, suffix=config.suffix)

    @property
    def pattern(self) -> "re.Pattern[str]":
        # greedy: strips through the last occurrence of the marker
        return re.compile(r"^.*" + re.escape(self.marker) + r"(?P<barcode>.*)$", re.DOTALL)


@dataclass(frozen=True)
class RewriteResult:
    """Outcome of rewriting one identifier.

    Attributes
    ----------
    original : str
        Identifier as published
    cell_id : str
        Rewritten identifier (equal to ``original`` when unmatched)
    matched : bool
        Whether the marker was found
    barcode : str, optional
        Extracted barcode, None when unmatched
    """

    original: str
    cell_id: str
    matched: bool
    barcode: Optional[str] = None


def rewrite_identifier(raw: str, rule: Optional[RewriteRule] = None) -> RewriteResult:
    """Rewrite one published identifier into the matrix cell-id format.

    Parameters
    ----------
    raw : str
        Published identifier
    rule : RewriteRule, optional
        Rewrite rule (default marker ``E13bm_``, suffix ``-1``)

    Returns
    -------
    RewriteResult
        Tagged result; unmatched identifiers are returned unchanged

    Example
    -------
    >>> rewrite_identifier("1_something_E13bm_AACCTTGG").cell_id
    'AACCTTGG-1'
    >>> rewrite_identifier("AACCTTGG-1").matched
    False
    """
    rule = rule or RewriteRule()
    raw = str(raw)
    match = rule.pattern.match(raw)
    if match is None:
        return RewriteResult(original=raw, cell_id=raw, matched=False)
    barcode = match.group("barcode")
    return RewriteResult(
        original=raw,
        cell_id=f"{barcode}{rule.suffix}",
        matched=True,
        barcode=barcode,
    )


def rewrite_identifiers(
    identifiers: Iterable[str], rule: Optional[RewriteRule] = None
) -> pd.DataFrame:
    """Rewrite many identifiers.

    Returns
    -------
    pd.DataFrame
        Columns ``original``, ``cell_id``, ``matched`` in input order
    """
    rule = rule or RewriteRule()
    results = [rewrite_identifier(raw, rule) for raw in identifiers]
    return pd.DataFrame(
        {
            "original": [r.original for r in results],
            "cell_id": [r.cell_id for r in results],
            "matched": [r.matched for r in results],
        }
    )


@dataclass
class LabelMap:
    """Published label per rewritten cell id.

    Attributes
    ----------
    labels : Dict[str, str]
        cell id -> published label (last row wins on duplicates)
    mismatched : List[str]
        Identifiers the rewrite rule did not apply to
    overwritten : Dict[str, List[str]]
        cell id -> labels that were replaced by a later row
    """

    labels: Dict[str, str] = field(default_factory=dict)
    mismatched: List[str] = field(default_factory=list)
    overwritten: Dict[str, List[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.labels)

    def get(self, cell_id: str, default: str = UNLABELED) -> str:
        return self.labels.get(cell_id, default)


def build_label_map(
    annotations: pd.DataFrame,
    rule: Optional[RewriteRule] = None,
    id_col: str = "orig_row_names",
    label_col: str = "Cell_Type",
) -> LabelMap:
    """Key published labels by rewritten cell id.

    The annotation table is not modified. Rows are applied in table order,
    so when two identifiers rewrite to the same cell id the later label is
    kept.
    """
    rule = rule or RewriteRule()
    rewritten = rewrite_identifiers(annotations[id_col].astype(str), rule)
    label_map = LabelMap()

    for cell_id, matched, original, label in zip(
        rewritten["cell_id"],
        rewritten["matched"],
        rewritten["original"],
        annotations[label_col].tolist(),
    ):
        if not matched:
            label_map.mismatched.append(original)
        if cell_id in label_map.labels:
            label_map.overwritten.setdefault(cell_id, []).append(label_map.labels[cell_id])
        label_map.labels[cell_id] = str(label)

    return label_map


def reconcile_labels(
    cell_ids: Sequence[str],
    label_map: LabelMap,
    unlabeled: str = UNLABELED,
) -> pd.Series:
    """Map every matrix cell id to a published label or ``unlabeled``.

    Returns
    -------
    pd.Series
        Indexed by cell id, in ``cell_ids`` order
    """
    index = pd.Index([str(c) for c in cell_ids], name="cell_id")
    return pd.Series(
        [label_map.get(cell_id, unlabeled) for cell_id in index],
        index=index,
        dtype=object,
        name="published_label",
    )


@dataclass
class ReconciliationResult:
    """Result from reconciling annotations against matrix cells.

    Attributes
    ----------
    labels : pd.Series
        Published label (or sentinel) per matrix cell
    n_annotations : int
        Annotation rows considered
    n_mismatched : int
        Identifiers the rewrite rule did not apply to
    n_duplicates : int
        Rewritten ids that appeared more than once
    n_labeled : int
        Matrix cells that received a published label
    n_unlabeled : int
        Matrix cells left at the sentinel
    n_orphan_annotations : int
        Rewritten ids that are not matrix cells
    mismatched_examples : List[str]
        First few mismatched identifiers
    """

    labels: pd.Series
    n_annotations: int = 0
    n_mismatched: int = 0
    n_duplicates: int = 0
    n_labeled: int = 0
    n_unlabeled: int = 0
    n_orphan_annotations: int = 0
    mismatched_examples: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "n_annotations": self.n_annotations,
            "n_mismatched": self.n_mismatched,
            "n_duplicates": self.n_duplicates,
            "n_labeled": self.n_labeled,
            "n_unlabeled": self.n_unlabeled,
            "n_orphan_annotations": self.n_orphan_annotations,
            "mismatched_examples": list(self.mismatched_examples),
        }


class BarcodeReconciler:
    """Join published labels onto matrix cells.

    Parameters
    ----------
    config : ReconciliationConfig, optional
        Rewrite rule and mismatch policy
    id_col : str
        Identifier column of the annotation table
    label_col : str
        Label column of the annotation table
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> reconciler = BarcodeReconciler(ReconciliationConfig(on_mismatch="error"))
    >>> result = reconciler.reconcile(adata.obs_names, annotations)
    >>> result.labels["AACCTTGG-1"]
    'MTCs'
    """

    def __init__(
        self,
        config: Optional[ReconciliationConfig] = None,
        id_col: str = "orig_row_names",
        label_col: str = "Cell_Type",
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ReconciliationConfig()
        self.rule = RewriteRule.from_config(self.config)
        self.id_col = id_col
        self.label_col = label_col
        self.logger = logger or logging.getLogger(__name__)

    def _handle_mismatches(self, mismatched: List[str]) -> None:
        if not mismatched or self.config.on_mismatch == "ignore":
            return
        if self.config.on_mismatch == "error":
            raise IdentifierMismatchError(mismatched, self.rule.marker)
        self.logger.warning(
            "%d annotation identifier(s) lack marker '%s' and were kept unchanged "
            "(e.g. %s)",
            len(mismatched), self.rule.marker, ", ".join(mismatched[:3]),
        )

    def reconcile(
        self, cell_ids: Sequence[str], annotations: pd.DataFrame
    ) -> ReconciliationResult:
        """Build the published-label column for every matrix cell.

        Raises
        ------
        IdentifierMismatchError
            If identifiers lack the marker and the policy is "error"
        """
        label_map = build_label_map(
            annotations, self.rule, id_col=self.id_col, label_col=self.label_col
        )
        self._handle_mismatches(label_map.mismatched)

        if label_map.overwritten:
            self.logger.warning(
                "%d rewritten cell id(s) appear more than once; keeping the last label",
                len(label_map.overwritten),
            )

        labels = reconcile_labels(cell_ids, label_map, unlabeled=self.config.unlabeled)
        n_labeled = int((labels != self.config.unlabeled).sum())
        matrix_ids = set(labels.index)
        n_orphans = sum(1 for cell_id in label_map.labels if cell_id not in matrix_ids)

        result = ReconciliationResult(
            labels=labels,
            n_annotations=len(annotations),
            n_mismatched=len(label_map.mismatched),
            n_duplicates=len(label_map.overwritten),
            n_labeled=n_labeled,
            n_unlabeled=len(labels) - n_labeled,
            n_orphan_annotations=n_orphans,
            mismatched_examples=label_map.mismatched[:5],
        )
        self.logger.info(
            "Reconciled %d annotations: %d/%d matrix cells labeled, %d annotations unmatched",
            result.n_annotations, result.n_labeled, len(labels), result.n_orphan_annotations,
        )
        return result
