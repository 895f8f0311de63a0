"""
Unit tests for the phase graph.
"""

import pytest

from hydra_planning.core.errors import GraphConfigurationError
from hydra_planning.core.phases import (
    PHASE_CONFIGS,
    PhaseConfig,
    PhaseGraph,
    PhaseKind,
    PhaseName,
    PhaseStatus,
)
from hydra_planning.core.roles import KeywordRoleResolver


def _statuses(**overrides):
    statuses = {name.value: PhaseStatus.PENDING for name in PhaseName}
    statuses.update(overrides)
    return statuses


class TestPhaseConfigs:
    """Test the default pipeline definition."""

    def test_six_phases_in_order(self, graph):
        names = [phase.name for phase in graph.ordered_phases()]
        assert names == ["speculate", "plan", "execute", "synthesize", "log", "archive"]

    def test_required_only(self, graph):
        names = [phase.name for phase in graph.ordered_phases(include_optional=False)]
        assert names == ["speculate", "plan", "execute", "synthesize"]

    def test_ordered_phases_is_deterministic(self, graph):
        assert graph.ordered_phases() == graph.ordered_phases()

    def test_system_phases_have_no_role(self):
        assert PHASE_CONFIGS["execute"].role is None
        assert PHASE_CONFIGS["archive"].role is None
        assert PHASE_CONFIGS["execute"].kind == PhaseKind.TASKS
        assert PHASE_CONFIGS["archive"].kind == PhaseKind.ARCHIVE

    def test_agent_phases_have_instructions(self):
        for name in ("speculate", "plan", "synthesize", "log"):
            assert PHASE_CONFIGS[name].instructions
            assert PHASE_CONFIGS[name].kind == PhaseKind.AGENT

    def test_timeouts(self):
        assert PHASE_CONFIGS["speculate"].timeout == 30.0
        assert PHASE_CONFIGS["plan"].timeout == 45.0
        assert PHASE_CONFIGS["execute"].timeout == 120.0
        assert PHASE_CONFIGS["archive"].timeout == 5.0

    def test_phase_config_is_frozen(self):
        with pytest.raises(Exception):
            PHASE_CONFIGS["plan"].timeout = 1.0


class TestCanStart:
    """Test prerequisite checks."""

    def test_first_phase_always_startable(self, graph):
        assert graph.can_start("speculate", {}) is True

    def test_blocked_until_prerequisite_completed(self, graph):
        assert graph.can_start("plan", _statuses()) is False
        assert graph.can_start("plan", _statuses(speculate=PhaseStatus.ACTIVE)) is False
        assert graph.can_start("plan", _statuses(speculate=PhaseStatus.FAILED)) is False
        assert graph.can_start("plan", _statuses(speculate=PhaseStatus.COMPLETED)) is True

    def test_skipped_prerequisite_blocks(self, graph):
        assert graph.can_start("archive", _statuses(log=PhaseStatus.SKIPPED)) is False

    def test_accepts_plain_strings(self, graph):
        assert graph.can_start("execute", {"plan": "completed"}) is True
        assert graph.can_start("execute", {"plan": "pending"}) is False

    def test_unknown_phase(self, graph):
        assert graph.can_start("deploy", _statuses()) is False

    @pytest.mark.parametrize("phase", [p.value for p in PhaseName])
    def test_matches_prerequisite_definition(self, graph, phase):
        """can_start is true iff every prerequisite is completed."""
        deps = graph.get_phase(phase).dependencies

        all_done = _statuses(**{dep: PhaseStatus.COMPLETED for dep in deps})
        assert graph.can_start(phase, all_done) is True

        for dep in deps:
            one_missing = dict(all_done)
            one_missing[dep] = PhaseStatus.PENDING
            assert graph.can_start(phase, one_missing) is False


class TestCustomGraph:
    """Test graphs built from custom phase lists."""

    def test_two_phase_graph(self):
        graph = PhaseGraph([
            PhaseConfig(name="a", role="researcher"),
            PhaseConfig(name="b", role="planner", dependencies=["a"]),
        ])

        assert graph.phase_names == ["a", "b"]
        assert graph.initial_statuses() == {"a": PhaseStatus.PENDING, "b": PhaseStatus.PENDING}
        assert graph.can_start("b", {"a": "completed"}) is True

    def test_get_phase(self, graph):
        assert graph.get_phase("plan").role == "planner"
        assert graph.get_phase("missing") is None

    def test_duplicate_phase_rejected(self):
        with pytest.raises(GraphConfigurationError, match="Duplicate"):
            PhaseGraph([PhaseConfig(name="a"), PhaseConfig(name="a")])

    def test_unknown_dependency_rejected(self):
        with pytest.raises(GraphConfigurationError, match="depends on"):
            PhaseGraph([PhaseConfig(name="a", dependencies=["ghost"])])

    def test_dependency_ordered_after_dependent_rejected(self):
        with pytest.raises(GraphConfigurationError):
            PhaseGraph([
                PhaseConfig(name="a", dependencies=["b"]),
                PhaseConfig(name="b"),
            ])

    def test_archive_must_be_last(self):
        with pytest.raises(GraphConfigurationError, match="last"):
            PhaseGraph([
                PhaseConfig(name="store", kind=PhaseKind.ARCHIVE),
                PhaseConfig(name="after"),
            ])

    def test_empty_graph_rejected(self):
        with pytest.raises(GraphConfigurationError):
            PhaseGraph([])


class TestRoleLookup:
    """Test the role helpers exposed on the graph."""

    def test_role_for_task_type(self, graph):
        assert graph.role_for_task_type("test") == "tester"
        assert graph.role_for_task_type("DEPLOY") == "devops"
        assert graph.role_for_task_type("unheard-of") == "architect"
        assert graph.role_for_task_type(None) == "architect"

    def test_infer_role_from_text(self, graph):
        assert graph.infer_role_from_text("Run a security scan") == "security"
        assert graph.infer_role_from_text("Explain the caching layer") == "researcher"

    def test_resolve_prefers_explicit_role(self, graph):
        assert graph.resolve_task_role("reviewer", "test", "Write tests") == "reviewer"

    def test_resolve_uses_known_type_before_text(self, graph):
        assert graph.resolve_task_role(None, "deploy", "Write the docs") == "devops"

    def test_resolve_unknown_type_falls_back_to_text(self, graph):
        assert graph.resolve_task_role(None, "misc", "Fix the login bug") == "remediator"

    def test_custom_resolver(self):
        resolver = KeywordRoleResolver(mapping={"ui": "designer"}, default_role="generalist")
        graph = PhaseGraph(role_resolver=resolver)

        assert graph.infer_role_from_text("Polish the UI") == "designer"
        assert graph.role_for_task_type("backend") == "generalist"
