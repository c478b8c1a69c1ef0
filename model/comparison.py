"""
Pairwise model comparison on PSIS-LOO results.

The difference in elpd between two models fitted to the same observations
is the sum of pointwise differences; its standard error is computed from
the pointwise differences as well, so the strong positive correlation
between the two models' pointwise elpd values is taken into account.

No significance test is made. ``ComparisonResult.ratio`` (|diff| / se) is
reported and left to the reader.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

import numpy as np
import pandas as pd

from utils.logging_utils import logger
from model.exceptions import ComparisonError
from model.loo import LooResult
from model.results import DiagnosticWarning


@dataclass(frozen=True)
class ComparisonResult:
    """elpd(first) - elpd(second) with the paired standard error."""
    first: str
    second: str
    elpd_diff: float
    se_diff: float
    diagnostics: Tuple[DiagnosticWarning, ...] = ()

    @property
    def ratio(self) -> float:
        """|elpd_diff| in units of its standard error."""
        if self.se_diff == 0:
            return float("inf") if self.elpd_diff != 0 else 0.0
        return abs(self.elpd_diff) / self.se_diff

    @property
    def preferred(self) -> str:
        """Model with the higher elpd (no significance implied)."""
        return self.first if self.elpd_diff >= 0 else self.second

    @property
    def is_reliable(self) -> bool:
        return not any(w.code == "unreliable_comparison" for w in self.diagnostics)

    def reversed(self) -> "ComparisonResult":
        return ComparisonResult(
            first=self.second,
            second=self.first,
            elpd_diff=-self.elpd_diff,
            se_diff=self.se_diff,
            diagnostics=self.diagnostics,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first": self.first,
            "second": self.second,
            "elpd_diff": self.elpd_diff,
            "se_diff": self.se_diff,
            "ratio": self.ratio,
            "preferred": self.preferred,
            "reliable": self.is_reliable,
            "warnings": [w.to_dict() for w in self.diagnostics],
        }

    def __str__(self) -> str:
        return (
            f"elpd({self.first}) - elpd({self.second}) = "
            f"{self.elpd_diff:.1f} (SE {self.se_diff:.1f})"
        )


def _check_compatible(first: LooResult, second: LooResult) -> None:
    if first.n_observations != second.n_observations:
        raise ComparisonError(
            f"Cannot compare {first.model_name} ({first.n_observations} observations) "
            f"with {second.model_name} ({second.n_observations} observations)",
            details="models must be fitted to the same observations",
        )


def paired_difference(first: LooResult, second: LooResult) -> Tuple[float, float]:
    """Sum of pointwise elpd differences and its standard error."""
    _check_compatible(first, second)
    diff = first.pointwise_elpd - second.pointwise_elpd
    n = len(diff)
    return float(diff.sum()), float(np.sqrt(n * np.var(diff)))


def compare_loo(first: LooResult, second: LooResult) -> ComparisonResult:
    """
    Compare two PSIS-LOO results.

    If either input has observations with high Pareto k, the comparison is
    still computed but carries an ``unreliable_comparison`` warning: it is
    a sanity check at best.

    Raises:
        ComparisonError: If the results cover different numbers of observations
    """
    elpd_diff, se_diff = paired_difference(first, second)

    warnings = []
    unreliable = [r.model_name for r in (first, second) if not r.is_reliable]
    if unreliable:
        warnings.append(DiagnosticWarning(
            source="comparison",
            code="unreliable_comparison",
            message=(
                f"PSIS-LOO is unreliable for {unreliable} (Pareto k above threshold); "
                "treat this comparison as a rough sanity check only"
            ),
            details={
                "models": unreliable,
                "n_high_k": {r.model_name: r.n_high_k for r in (first, second)},
            },
        ))

    result = ComparisonResult(
        first=first.model_name,
        second=second.model_name,
        elpd_diff=elpd_diff,
        se_diff=se_diff,
        diagnostics=tuple(warnings),
    )

    logger.info(f"Comparison: {result}")
    for warning in warnings:
        logger.warning(str(warning))
    return result


def comparison_table(results: Mapping[str, LooResult]) -> pd.DataFrame:
    """
    Rank models by elpd_loo, best first.

    Columns: elpd_loo, se, elpd_diff and se_diff relative to the best model
    (paired), p_loo, looic, n_high_k and a warning flag.
    """
    if not results:
        raise ComparisonError("No LOO results to compare")

    ranked = sorted(results.items(), key=lambda item: item[1].elpd_loo, reverse=True)
    best_name, best = ranked[0]

    rows: List[Dict[str, Any]] = []
    for name, loo in ranked:
        if name == best_name:
            elpd_diff, se_diff = 0.0, 0.0
        else:
            elpd_diff, se_diff = paired_difference(loo, best)
        rows.append({
            "model": name,
            "rank": len(rows),
            "elpd_loo": loo.elpd_loo,
            "se": loo.se,
            "elpd_diff": elpd_diff,
            "se_diff": se_diff,
            "p_loo": loo.p_loo,
            "looic": loo.looic,
            "n_high_k": loo.n_high_k,
            "warning": not loo.is_reliable,
        })

    return pd.DataFrame(rows).set_index("model")
