"""Job phase state machine definitions."""

from __future__ import annotations

from enum import Enum

from app.core.exceptions import InvalidPhaseTransitionError


class Phase(str, Enum):
    """Named stages of one optimization job, in execution order."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RESOLVING_POST = "resolving_post"
    ANALYZING_EXISTING = "analyzing_existing"
    ENTITY_GAP_ANALYSIS = "entity_gap_analysis"
    NEURON_ANALYSIS = "neuron_analysis"
    REFERENCE_DISCOVERY = "reference_discovery"
    OUTLINE_GENERATION = "outline_generation"
    SECTION_DRAFTS = "section_drafts"
    YOUTUBE_INTEGRATION = "youtube_integration"
    MERGE_CONTENT = "merge_content"
    INTERNAL_LINKING = "internal_linking"
    QA_VALIDATION = "qa_validation"
    FINAL_POLISH = "final_polish"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def step(self) -> int:
        return PHASE_STEPS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


PHASE_STEPS: dict[Phase, int] = {
    Phase.IDLE: 0,
    Phase.INITIALIZING: 1,
    Phase.RESOLVING_POST: 2,
    Phase.ANALYZING_EXISTING: 3,
    Phase.ENTITY_GAP_ANALYSIS: 4,
    Phase.NEURON_ANALYSIS: 5,
    Phase.REFERENCE_DISCOVERY: 6,
    Phase.OUTLINE_GENERATION: 7,
    Phase.SECTION_DRAFTS: 8,
    Phase.YOUTUBE_INTEGRATION: 9,
    Phase.MERGE_CONTENT: 10,
    Phase.INTERNAL_LINKING: 11,
    Phase.QA_VALIDATION: 12,
    Phase.FINAL_POLISH: 13,
    Phase.PUBLISHING: 14,
    Phase.COMPLETED: 15,
    Phase.FAILED: 0,
}

TOTAL_STEPS = 15

TERMINAL_PHASES = frozenset({Phase.COMPLETED, Phase.FAILED})

# Phases from which a job may be marked completed
COMPLETION_SOURCES = frozenset({Phase.FINAL_POLISH, Phase.PUBLISHING})

PHASE_LABELS: dict[Phase, str] = {
    Phase.IDLE: "Ready",
    Phase.INITIALIZING: "Initializing",
    Phase.RESOLVING_POST: "Finding Post",
    Phase.ANALYZING_EXISTING: "Analyzing",
    Phase.ENTITY_GAP_ANALYSIS: "Entity Analysis",
    Phase.NEURON_ANALYSIS: "NLP Analysis",
    Phase.REFERENCE_DISCOVERY: "References",
    Phase.OUTLINE_GENERATION: "Outline",
    Phase.SECTION_DRAFTS: "Writing",
    Phase.YOUTUBE_INTEGRATION: "Video",
    Phase.MERGE_CONTENT: "Merging",
    Phase.INTERNAL_LINKING: "Links",
    Phase.QA_VALIDATION: "QA Check",
    Phase.FINAL_POLISH: "Polishing",
    Phase.PUBLISHING: "Publishing",
    Phase.COMPLETED: "Complete!",
    Phase.FAILED: "Failed",
}

# Sub-stages reported by the synthesis engine while it runs
SYNTHESIS_STAGE_PHASES: dict[str, Phase] = {
    "outline": Phase.OUTLINE_GENERATION,
    "sections": Phase.SECTION_DRAFTS,
    "youtube": Phase.YOUTUBE_INTEGRATION,
    "references": Phase.REFERENCE_DISCOVERY,
    "merge": Phase.MERGE_CONTENT,
    "polish": Phase.FINAL_POLISH,
}


def phase_for_stage(stage: str) -> Phase | None:
    """Map a synthesis sub-stage name onto a job phase."""
    return SYNTHESIS_STAGE_PHASES.get(str(stage).strip().lower())


def resolve_transition(current: Phase, requested: Phase) -> Phase:
    """Return the phase a job holds after ``requested`` is reported.

    Phases only move forward. A report that would move the job backwards
    (synthesis sub-stages and post-synthesis checks arrive out of ordinal
    order) keeps the furthest phase reached. ``failed`` is reachable from any
    non-terminal phase; ``completed`` only from the closing phases.

    Raises:
        InvalidPhaseTransitionError: If the job is already terminal, or
            completion is requested before the closing phases.
    """
    if current.is_terminal:
        if requested == current:
            return current
        raise InvalidPhaseTransitionError(current.value, requested.value)
    if requested == Phase.FAILED:
        return requested
    if requested == Phase.COMPLETED:
        if current not in COMPLETION_SOURCES:
            raise InvalidPhaseTransitionError(current.value, requested.value)
        return requested
    if requested.step >= current.step:
        return requested
    return current


def progress_percent(step: int) -> int:
    """Whole-number completion percentage for a step index."""
    clamped = min(max(step, 0), TOTAL_STEPS)
    return (100 * clamped) // TOTAL_STEPS
