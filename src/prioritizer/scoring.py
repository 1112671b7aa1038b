"""Scoring schemes and the rank score computation.

Two schemes are built in:

``weighted``
    Additive. Seven factors on a 0-5 scale are normalised to [0, 1] (risk is
    reversed), multiplied by their weights and divided by the total weight.
    A chart-only ``cost`` factor feeds the effort coordinate.

``rice``
    Multiplicative. ``((wI*I) * (wR*R) + wU*U + wA*A) / (wE*E)`` scaled
    against the same expression evaluated at every factor's best value.
    Effort uses the non-linear scale 1, 2, 3, 5, 8.

Everything here is pure: no I/O, no mutation of the records passed in.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from prioritizer.validation import clamp_weight, coerce_factor

if TYPE_CHECKING:
    from prioritizer.core import UseCaseRecord
    from prioritizer.types.api import ScoredRecordDict
    from prioritizer.types.core import WeightConfigDict

SchemeKind = Literal["additive", "multiplicative"]

# Floor for a weight that ends up in a denominator.
MIN_DENOMINATOR_WEIGHT = 0.1

DEFAULT_SCHEME = "weighted"


@dataclass(frozen=True)
class Factor:
    """One scored input dimension."""

    key: str
    label: str
    minimum: int = 0
    maximum: int = 5
    reversed: bool = False
    scale: tuple[int, ...] | None = None
    weighted: bool = True
    description: str = ""

    @property
    def best(self) -> int:
        return self.minimum if self.reversed else self.maximum

    def coerce(self, value: Any) -> int:
        return coerce_factor(self.key, value, minimum=self.minimum, maximum=self.maximum, scale=self.scale)

    def read(self, factors: Mapping[str, Any]) -> float:
        """Numeric value of this factor in *factors*; missing or junk reads as the minimum."""
        raw = factors.get(self.key, self.minimum)
        if isinstance(raw, bool):
            return float(self.minimum)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return float(self.minimum)
        return value if math.isfinite(value) else float(self.minimum)

    def normalize(self, value: float) -> float:
        span = self.maximum - self.minimum
        n = _clamp01((value - self.minimum) / span) if span else 0.0
        return 1.0 - n if self.reversed else n

    def snap(self, value: int) -> int:
        """Nearest valid value to *value* (used for seeding defaults)."""
        if self.scale is not None:
            return min(self.scale, key=lambda s: (abs(s - value), s))
        return max(self.minimum, min(self.maximum, value))


@dataclass(frozen=True)
class ScoringScheme:
    name: str
    kind: SchemeKind
    factors: tuple[Factor, ...]
    default_weights: Mapping[str, float]
    max_weight: float
    default_seed: int = 3

    @property
    def factor_keys(self) -> list[str]:
        return [f.key for f in self.factors]

    @property
    def weighted_factors(self) -> list[Factor]:
        return [f for f in self.factors if f.weighted]

    def factor(self, key: str) -> Factor:
        for f in self.factors:
            if f.key == key:
                return f
        msg = f"Unknown factor '{key}' for scheme '{self.name}'. Valid factors: {', '.join(self.factor_keys)}"
        raise ValueError(msg)


WEIGHTED_SCHEME = ScoringScheme(
    name="weighted",
    kind="additive",
    factors=(
        Factor("impact", "Impact", description="Business value if delivered: revenue, cost savings, NPS, risk reduction."),
        Factor("ttv", "TTV", description="Time to value: how quickly value is realized after starting."),
        Factor("feasibility", "Feasibility", description="Likelihood of successful delivery with current tech and skills."),
        Factor("data", "Data", description="Data readiness, quality and access."),
        Factor("risk", "Risk", reversed=True, description="Regulatory, compliance, security or brand risk (reversed)."),
        Factor("align", "Alignment", description="Strategic alignment with goals and roadmap."),
        Factor("buyin", "Buy-in", description="Stakeholder enthusiasm and sponsorship."),
        Factor("cost", "Cost", weighted=False, description="Declared cost; moves the effort coordinate only."),
    ),
    default_weights={"impact": 25, "ttv": 15, "feasibility": 15, "data": 10, "risk": 10, "align": 15, "buyin": 10},
    max_weight=40,
)

RICE_SCHEME = ScoringScheme(
    name="rice",
    kind="multiplicative",
    factors=(
        Factor("impact", "Impact", description="Value delivered per user reached."),
        Factor("reach", "Reach", description="How many users or processes are touched."),
        Factor(
            "effort",
            "Effort",
            minimum=1,
            maximum=8,
            reversed=True,
            scale=(1, 2, 3, 5, 8),
            description="Relative size of the work (1, 2, 3, 5, 8).",
        ),
        Factor("urgency", "Urgency", maximum=4, description="Cost of waiting."),
        Factor("align", "Alignment", description="Strategic alignment with goals and roadmap."),
    ),
    default_weights={"impact": 1, "reach": 1, "effort": 1, "urgency": 1, "align": 1},
    max_weight=5,
)

SCHEMES: dict[str, ScoringScheme] = {s.name: s for s in (WEIGHTED_SCHEME, RICE_SCHEME)}

PRESETS: dict[str, dict[str, dict[str, float]]] = {
    "weighted": {
        "Board Pitch": {"impact": 30, "ttv": 15, "feasibility": 10, "data": 5, "risk": 10, "align": 20, "buyin": 10},
        "Ops Quick Wins": {"impact": 20, "ttv": 25, "feasibility": 20, "data": 15, "risk": 10, "align": 5, "buyin": 5},
        "R&D Bets": {"impact": 25, "ttv": 5, "feasibility": 10, "data": 15, "risk": 10, "align": 20, "buyin": 15},
    },
    "rice": {
        "Balanced": {"impact": 1, "reach": 1, "effort": 1, "urgency": 1, "align": 1},
        "Urgent First": {"impact": 1, "reach": 1, "effort": 1, "urgency": 3, "align": 1},
    },
}

# Low priority (green) -> high priority (red).
COLOR_STOPS: tuple[str, ...] = ("#10B981", "#FBBF24", "#F59E0B", "#E02424")


def get_scheme(name: str) -> ScoringScheme:
    try:
        return SCHEMES[name]
    except KeyError:
        msg = f"Unknown scheme '{name}'. Valid schemes: {', '.join(SCHEMES)}"
        raise ValueError(msg) from None


def default_factors(scheme: ScoringScheme | str, seed: int | None = None) -> dict[str, int]:
    """Factor values for a blank record: every factor at *seed* (snapped to its range)."""
    if isinstance(scheme, str):
        scheme = get_scheme(scheme)
    value = scheme.default_seed if seed is None else seed
    return {f.key: f.snap(value) for f in scheme.factors}


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------


@dataclass
class WeightConfig:
    """Named weights applied to a scheme's factors."""

    scheme: str = DEFAULT_SCHEME
    weights: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        scheme = get_scheme(self.scheme)
        merged = dict(scheme.default_weights)
        merged.update({k: v for k, v in self.weights.items() if k in scheme.default_weights})
        self.weights = {k: clamp_weight(v, maximum=scheme.max_weight) for k, v in merged.items()}

    @classmethod
    def defaults(cls, scheme: str = DEFAULT_SCHEME) -> WeightConfig:
        return cls(scheme=scheme)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None, *, scheme: str = DEFAULT_SCHEME) -> WeightConfig:
        """Build from a stored weights mapping. Unknown keys are dropped, missing keys defaulted."""
        if not data:
            return cls(scheme=scheme)
        return cls(scheme=scheme, weights={str(k): v for k, v in data.items()})

    @property
    def definition(self) -> ScoringScheme:
        return get_scheme(self.scheme)

    def get(self, key: str) -> float:
        return self.weights.get(key, 0.0)

    def total(self) -> float:
        return sum(self.weights.values())

    def with_weight(self, key: str, value: Any) -> WeightConfig:
        self.definition.factor(key)
        if key not in self.definition.default_weights:
            msg = f"Factor '{key}' is not weighted in scheme '{self.scheme}'"
            raise ValueError(msg)
        return WeightConfig(scheme=self.scheme, weights={**self.weights, key: value})

    def to_dict(self) -> WeightConfigDict:
        return {"scheme": self.scheme, "weights": dict(self.weights)}


def apply_preset(weights: WeightConfig, preset: str) -> WeightConfig:
    presets = PRESETS.get(weights.scheme, {})
    if preset not in presets:
        msg = f"Unknown preset '{preset}'. Valid presets: {', '.join(presets)}"
        raise ValueError(msg)
    return WeightConfig(scheme=weights.scheme, weights=dict(presets[preset]))


# ---------------------------------------------------------------------------
# Score computation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreResult:
    score: int
    effort: float
    value: float


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def _factor_values(record: Mapping[str, Any] | UseCaseRecord) -> Mapping[str, Any]:
    if isinstance(record, Mapping):
        return record
    return record.factors


def compute_score(record: Mapping[str, Any] | UseCaseRecord, weights: WeightConfig) -> ScoreResult:
    """Rank score (0-100) plus the effort/value chart coordinates."""
    factors = _factor_values(record)
    scheme = weights.definition
    if scheme.kind == "multiplicative":
        return _multiplicative(scheme, factors, weights)
    return _additive(scheme, factors, weights)


def _additive(scheme: ScoringScheme, factors: Mapping[str, Any], weights: WeightConfig) -> ScoreResult:
    total = 0.0
    weighted = 0.0
    for f in scheme.weighted_factors:
        w = weights.get(f.key)
        total += w
        weighted += f.normalize(f.read(factors)) * w
    score = _round_half_up(weighted / total * 100) if total > 0 else 0

    values = {f.key: f.read(factors) for f in scheme.factors}
    cost = values["cost"] if "cost" in factors else 3.0
    effort = (6 - (values["feasibility"] + values["ttv"])) + cost
    value = float(_round_half_up((values["impact"] + values["align"]) * 10))
    return ScoreResult(score=score, effort=effort, value=value)


def _multiplicative(scheme: ScoringScheme, factors: Mapping[str, Any], weights: WeightConfig) -> ScoreResult:
    effort_factor = scheme.factor("effort")
    w_e = max(weights.get("effort"), MIN_DENOMINATOR_WEIGHT)

    def raw(values: Mapping[str, float]) -> float:
        numerator = (
            (weights.get("impact") * values["impact"]) * (weights.get("reach") * values["reach"])
            + weights.get("urgency") * values["urgency"]
            + weights.get("align") * values["align"]
        )
        return numerator / (w_e * max(values["effort"], float(effort_factor.minimum)))

    values = {f.key: f.read(factors) for f in scheme.factors}
    best = {f.key: float(f.best) for f in scheme.factors}
    max_raw = raw(best)
    score = _round_half_up(_clamp01(raw(values) / max_raw) * 100) if max_raw > 0 else 0

    effort = w_e * max(values["effort"], float(effort_factor.minimum))
    value = weights.get("impact") * values["impact"] + weights.get("align") * values["align"]
    return ScoreResult(score=score, effort=effort, value=value)


def score_color(score: float) -> str:
    """Continuous gradient across COLOR_STOPS indexed by ``score / 100``."""
    stops = [_hex_to_rgb(c) for c in COLOR_STOPS]
    t = _clamp01(score / 100)
    position = t * (len(stops) - 1)
    i = min(int(position), len(stops) - 2)
    frac = position - i
    lo, hi = stops[i], stops[i + 1]
    rgb = tuple(_round_half_up(a + (b - a) * frac) for a, b in zip(lo, hi, strict=True))
    return "#{:02X}{:02X}{:02X}".format(*rgb)


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    h = color.lstrip("#")
    return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16))


# ---------------------------------------------------------------------------
# Scored projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoredRecord:
    """A record paired with its derived metrics for the current weights."""

    record: UseCaseRecord
    score: int
    effort: float
    value: float
    color: str

    def sort_value(self, key: str) -> Any:
        if key in ("score", "effort", "value"):
            return getattr(self, key)
        return self.record.sort_value(key)

    def to_dict(self) -> ScoredRecordDict:
        ref = self.record.remote_ref
        return {
            "id": self.record.id,
            "name": self.record.name,
            "notes": self.record.notes,
            "factors": dict(self.record.factors),
            "selected": self.record.selected,
            "imported": self.record.imported,
            "remote_ref": ref.to_dict() if ref is not None else None,
            "score": self.score,
            "effort": self.effort,
            "value": self.value,
            "color": self.color,
        }


def score_record(record: UseCaseRecord, weights: WeightConfig) -> ScoredRecord:
    result = compute_score(record, weights)
    return ScoredRecord(
        record=record,
        score=result.score,
        effort=result.effort,
        value=result.value,
        color=score_color(result.score),
    )


def score_records(records: Iterable[UseCaseRecord], weights: WeightConfig) -> list[ScoredRecord]:
    return [score_record(r, weights) for r in records]
