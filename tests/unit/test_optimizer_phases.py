"""Unit tests for the job phase state machine."""

from __future__ import annotations

import pytest

from app.core.exceptions import InvalidPhaseTransitionError
from app.services.optimizer.phases import (
    PHASE_LABELS,
    TOTAL_STEPS,
    Phase,
    phase_for_stage,
    progress_percent,
    resolve_transition,
)


def test_every_phase_has_step_and_label() -> None:
    assert Phase.IDLE.step == 0
    assert Phase.COMPLETED.step == TOTAL_STEPS == 15
    assert Phase.FAILED.step == 0
    assert Phase.PUBLISHING.step == 14
    assert set(PHASE_LABELS) == set(Phase)


def test_synthesis_stages_map_to_phases() -> None:
    assert phase_for_stage("outline") == Phase.OUTLINE_GENERATION
    assert phase_for_stage("sections") == Phase.SECTION_DRAFTS
    assert phase_for_stage("youtube") == Phase.YOUTUBE_INTEGRATION
    assert phase_for_stage("references") == Phase.REFERENCE_DISCOVERY
    assert phase_for_stage("merge") == Phase.MERGE_CONTENT
    assert phase_for_stage(" Polish ") == Phase.FINAL_POLISH
    assert phase_for_stage("unknown") is None


def test_forward_transition_moves_to_requested_phase() -> None:
    assert resolve_transition(Phase.INITIALIZING, Phase.RESOLVING_POST) == Phase.RESOLVING_POST
    assert resolve_transition(Phase.RESOLVING_POST, Phase.QA_VALIDATION) == Phase.QA_VALIDATION


def test_lower_ordinal_report_keeps_furthest_phase() -> None:
    assert resolve_transition(Phase.YOUTUBE_INTEGRATION, Phase.REFERENCE_DISCOVERY) == Phase.YOUTUBE_INTEGRATION
    assert resolve_transition(Phase.FINAL_POLISH, Phase.QA_VALIDATION) == Phase.FINAL_POLISH


def test_failed_reachable_from_any_non_terminal_phase() -> None:
    for phase in Phase:
        if phase.is_terminal:
            continue
        assert resolve_transition(phase, Phase.FAILED) == Phase.FAILED


def test_completed_only_from_closing_phases() -> None:
    assert resolve_transition(Phase.PUBLISHING, Phase.COMPLETED) == Phase.COMPLETED
    assert resolve_transition(Phase.FINAL_POLISH, Phase.COMPLETED) == Phase.COMPLETED
    with pytest.raises(InvalidPhaseTransitionError):
        resolve_transition(Phase.QA_VALIDATION, Phase.COMPLETED)


@pytest.mark.parametrize("terminal", [Phase.COMPLETED, Phase.FAILED])
def test_terminal_phases_have_no_outgoing_transitions(terminal: Phase) -> None:
    assert resolve_transition(terminal, terminal) == terminal
    with pytest.raises(InvalidPhaseTransitionError):
        resolve_transition(terminal, Phase.INITIALIZING)


def test_progress_percent_is_floored() -> None:
    assert progress_percent(0) == 0
    assert progress_percent(7) == 46
    assert progress_percent(14) == 93
    assert progress_percent(15) == 100
    assert progress_percent(99) == 100
