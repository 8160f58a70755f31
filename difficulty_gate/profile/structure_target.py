"""
Targets that do not come from reference texts.

- ``target_from_structure``: a rule-of-thumb target from the item's shape
  (problem type, reasoning steps, blank type, CEFR level).
- ``baseline_target``: the mean profile of a small built-in set of reading
  items, usable as a default target.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from difficulty_gate.errors import InvalidInputError
from difficulty_gate.profile.target_profile import Stability
from difficulty_gate.scoring.difficulty_score import AXES, DifficultyComponents
from difficulty_gate.scoring.item_evaluator import compute_components
from difficulty_gate.semantic.embedding_service import EmbeddingService


class ProblemType(str, Enum):
    SELECTION = "selection"
    FILL_BLANK = "fill_blank"
    CONSTRUCTED = "constructed"
    TRANSFORMATION = "transformation"


class BlankType(str, Enum):
    NONE = "none"
    FULL = "full"
    PREFIX = "prefix"


CEFR_L = {"A1": 0.2, "A2": 0.3, "B1": 0.4, "B2": 0.5, "C1": 0.6, "C2": 0.7}
TYPE_S = {
    ProblemType.SELECTION: 0.35,
    ProblemType.FILL_BLANK: 0.4,
    ProblemType.CONSTRUCTED: 0.55,
    ProblemType.TRANSFORMATION: 0.5,
}
TYPE_A = {
    ProblemType.SELECTION: 0.45,
    ProblemType.FILL_BLANK: 0.35,
    ProblemType.CONSTRUCTED: 0.2,
    ProblemType.TRANSFORMATION: 0.25,
}
STEPS_R = {1: 0.25, 2: 0.5, 3: 0.75}
PREFIX_BONUS = 0.05
STRUCTURE_TOLERANCE = 0.07


@dataclass(frozen=True)
class StructureTarget:
    mean: DifficultyComponents
    stability: Stability
    effective_tolerance: float

    def to_dict(self) -> dict:
        return {
            "mean": self.mean.to_dict(),
            "stability": self.stability.value,
            "effectiveTolerance": self.effective_tolerance,
        }


def target_from_structure(
    problem_type: ProblemType,
    reasoning_steps: int,
    blank_type: BlankType,
    cefr: str,
) -> StructureTarget:
    level = cefr.upper()
    if level not in CEFR_L:
        raise InvalidInputError(f"Unknown CEFR level: {cefr}", reason="unknown_cefr")
    if reasoning_steps not in STEPS_R:
        raise InvalidInputError(
            f"reasoning_steps must be 1, 2 or 3, got {reasoning_steps}", reason="bad_steps"
        )
    prefix_bonus = PREFIX_BONUS if blank_type == BlankType.PREFIX else 0.0
    mean = DifficultyComponents(
        L=min(CEFR_L[level] + prefix_bonus, 1.0),
        S=TYPE_S[problem_type],
        A=min(TYPE_A[problem_type] + prefix_bonus, 1.0),
        R=STEPS_R[reasoning_steps],
    )
    return StructureTarget(mean=mean, stability=Stability.MEDIUM, effective_tolerance=STRUCTURE_TOLERANCE)


# =============================================================================
# Baseline reading items
# =============================================================================


@dataclass(frozen=True)
class BaselineItem:
    text: str
    correct: str
    distractors: tuple[str, ...]
    steps: int


BASELINE_ITEMS: tuple[BaselineItem, ...] = (
    BaselineItem(
        text="The passage argues that urban green spaces reduce heat and improve wellbeing, "
        "but notes funding remains limited.",
        correct="Green spaces cool cities and support health, yet funding is limited.",
        distractors=(
            "Green spaces increase heat but funding is abundant.",
            "Urban greenery has no effect on heat or wellbeing.",
            "Funding is sufficient and health benefits are overstated.",
        ),
        steps=3,
    ),
    BaselineItem(
        text="The author suggests that remote work boosts productivity for focused tasks, "
        "while collaboration may suffer without structure.",
        correct="Remote work can improve focus, but collaboration needs structure.",
        distractors=(
            "Remote work always harms productivity and collaboration.",
            "Collaboration improves automatically with remote work.",
            "Productivity declines for focused tasks in remote settings.",
        ),
        steps=2,
    ),
    BaselineItem(
        text="According to the report, battery costs have fallen, but supply chain "
        "constraints may slow adoption.",
        correct="Lower battery costs help adoption, though supply chains can slow it.",
        distractors=(
            "Battery costs have risen and adoption is accelerating.",
            "Adoption is unaffected by costs or supply chains.",
            "Supply chains are improving while costs remain high.",
        ),
        steps=2,
    ),
    BaselineItem(
        text="The study indicates that bilingual education improves cognitive flexibility, "
        "yet outcomes vary by program quality.",
        correct="Bilingual education can boost flexibility, but quality affects results.",
        distractors=(
            "Bilingual education harms flexibility regardless of quality.",
            "Program quality is irrelevant to outcomes.",
            "Cognitive flexibility declines as bilingual exposure increases.",
        ),
        steps=3,
    ),
    BaselineItem(
        text="The editorial claims that public transit investment reduces congestion, "
        "though initial costs are substantial.",
        correct="Transit investment can cut congestion despite high upfront costs.",
        distractors=(
            "Transit investment increases congestion and has low costs.",
            "Congestion is unaffected by transit investment.",
            "Upfront costs are low and congestion worsens.",
        ),
        steps=2,
    ),
    BaselineItem(
        text="The analysis notes that water conservation policies work best when paired "
        "with consumer education.",
        correct="Conservation policies are most effective with education.",
        distractors=(
            "Education reduces conservation outcomes.",
            "Policies alone are always sufficient.",
            "Conservation works only without education.",
        ),
        steps=2,
    ),
    BaselineItem(
        text="The author implies that AI tools can assist clinicians, but should not "
        "replace human judgment.",
        correct="AI can support clinicians but should not replace judgment.",
        distractors=(
            "AI should replace clinicians entirely.",
            "AI is unrelated to clinical decision-making.",
            "Human judgment should be replaced by automation.",
        ),
        steps=2,
    ),
    BaselineItem(
        text="The commentary suggests that transparent pricing increases trust, yet some "
        "firms avoid disclosure.",
        correct="Transparent pricing builds trust, but some firms avoid it.",
        distractors=(
            "Pricing transparency reduces trust and is widely used.",
            "Firms always disclose prices, and trust is unchanged.",
            "Avoiding disclosure improves transparency.",
        ),
        steps=2,
    ),
)


def baseline_target(
    embeddings: EmbeddingService,
    items: tuple[BaselineItem, ...] = BASELINE_ITEMS,
    *,
    max_steps: int = 5,
    dim: int = 8,
) -> DifficultyComponents:
    """Mean components over the baseline items."""
    if not items:
        raise InvalidInputError("Baseline items are required", reason="no_baseline_items")
    samples = [
        compute_components(
            item.text,
            item.correct,
            list(item.distractors),
            item.steps,
            embeddings,
            max_steps=max_steps,
            dim=dim,
        )
        for item in items
    ]
    return DifficultyComponents(
        *(sum(sample.get(axis) for sample in samples) / len(samples) for axis in AXES)
    )
