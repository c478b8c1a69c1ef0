"""
Model specifications for count regression.

A ``ModelSpec`` fully describes one model variant: the response family,
the covariate subset, the exposure offset and the priors. Specifications
are immutable; variants are derived with ``with_family`` / ``without``,
which always return new objects.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from model.constants import (
    COVARIATES,
    DEFAULT_DISPERSION_PRIOR_RATE,
    DEFAULT_INTERCEPT_PRIOR_SD,
    DEFAULT_SLOPE_PRIOR_SD,
    DISPERSION_NAME,
    INTERCEPT_NAME,
    OFFSET_COL,
    RESPONSE_COL,
)
from model.exceptions import ModelSpecError


class Family(enum.Enum):
    """Likelihood family of the count response."""
    POISSON = "poisson"
    NEGATIVE_BINOMIAL = "negative_binomial"

    @classmethod
    def parse(cls, value) -> "Family":
        """Accept a Family, its value, or a common alias."""
        if isinstance(value, cls):
            return value
        aliases = {"nb": cls.NEGATIVE_BINOMIAL, "negbin": cls.NEGATIVE_BINOMIAL}
        key = str(value).strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError as e:
            raise ModelSpecError(f"Unknown response family: {value!r}") from e

    @property
    def short_name(self) -> str:
        return "pois" if self is Family.POISSON else "nb"


@dataclass(frozen=True)
class PriorSpec:
    """
    Prior distributions for the coefficients.

    Intercept ~ Normal(0, intercept_sd), slopes ~ Normal(0, slope_sd) and,
    for the negative binomial family, the reciprocal dispersion
    phi ~ Exponential(dispersion_rate).
    """
    intercept_sd: float = DEFAULT_INTERCEPT_PRIOR_SD
    slope_sd: float = DEFAULT_SLOPE_PRIOR_SD
    dispersion_rate: float = DEFAULT_DISPERSION_PRIOR_RATE

    def __post_init__(self):
        for name in ("intercept_sd", "slope_sd", "dispersion_rate"):
            value = getattr(self, name)
            if not value > 0:
                raise ModelSpecError(f"Prior parameter {name} must be positive, got {value}")


@dataclass(frozen=True)
class ModelSpec:
    """
    Immutable description of one count-regression model.

    The intercept is always included and ``log(offset)`` is always added to
    the linear predictor.
    """
    family: Family
    covariates: Tuple[str, ...] = COVARIATES
    priors: PriorSpec = field(default_factory=PriorSpec)
    response: str = RESPONSE_COL
    offset: str = OFFSET_COL
    allowed_covariates: Tuple[str, ...] = field(default=COVARIATES, repr=False)

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "family", Family.parse(self.family))
        object.__setattr__(self, "covariates", tuple(self.covariates))

        unknown = [c for c in self.covariates if c not in self.allowed_covariates]
        if unknown:
            raise ModelSpecError(
                f"Unknown covariates {unknown}",
                details=f"allowed: {list(self.allowed_covariates)}",
            )
        if len(set(self.covariates)) != len(self.covariates):
            raise ModelSpecError(f"Duplicate covariates in {list(self.covariates)}")

    @property
    def name(self) -> str:
        """Readable identifier, e.g. ``nb`` or ``pois-no_senior``."""
        dropped = [c for c in self.allowed_covariates if c not in self.covariates]
        if not dropped:
            return self.family.short_name
        return f"{self.family.short_name}-no_{'_'.join(dropped)}"

    @property
    def is_full(self) -> bool:
        return set(self.covariates) == set(self.allowed_covariates)

    @property
    def parameter_names(self) -> List[str]:
        names = [INTERCEPT_NAME] + list(self.covariates)
        if self.family is Family.NEGATIVE_BINOMIAL:
            names.append(DISPERSION_NAME)
        return names

    def with_family(self, family) -> "ModelSpec":
        """Return a copy of this specification with another family."""
        return replace(self, family=Family.parse(family))

    def without(self, covariate: str) -> "ModelSpec":
        """Return a copy of this specification with one covariate dropped."""
        if covariate not in self.covariates:
            raise ModelSpecError(f"Covariate {covariate!r} is not part of model {self.name}")
        return replace(self, covariates=tuple(c for c in self.covariates if c != covariate))

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "family": self.family.value,
            "covariates": list(self.covariates),
            "response": self.response,
            "offset": f"log({self.offset})",
            "priors": {
                "intercept": f"normal(0, {self.priors.intercept_sd})",
                "slopes": f"normal(0, {self.priors.slope_sd})",
                "reciprocal_dispersion": (
                    f"exponential({self.priors.dispersion_rate})"
                    if self.family is Family.NEGATIVE_BINOMIAL else None
                ),
            },
        }


def build_model_grid(
    families: Iterable = (Family.POISSON, Family.NEGATIVE_BINOMIAL),
    covariates: Iterable[str] = COVARIATES,
    priors: Optional[PriorSpec] = None,
) -> List[ModelSpec]:
    """
    Build the full model and every drop-one reduced model for each family.

    Returns:
        Specifications ordered family by family, full model first
    """
    priors = priors or PriorSpec()
    covariates = tuple(covariates)
    grid = []
    for family in families:
        full = ModelSpec(
            family=Family.parse(family),
            covariates=covariates,
            priors=priors,
            allowed_covariates=covariates,
        )
        grid.append(full)
        grid.extend(full.without(c) for c in covariates)
    return grid
