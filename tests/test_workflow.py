"""Tests for workflow definitions, the step runner and the workflow graph."""

import json
from functools import partial
from pathlib import Path

import pytest
from pydantic import ValidationError

from healing_navigator.agent.classifier import FallbackClassifier
from healing_navigator.agent.executor import RecoveryExecutor
from healing_navigator.agent.graph import WorkflowGraph
from healing_navigator.agent.recovery import FixDispatcher
from healing_navigator.agent.workflow import StepAction, StepRunner, Workflow, WorkflowStep, load_workflow
from healing_navigator.browser.locators import CandidateTable, LocatorResolver
from healing_navigator.exceptions import LocatorNotFoundError
from healing_navigator.vision.observer import PageObserver
from tests.conftest import FakeSurface


WORKFLOWS_DIR = Path(__file__).parent.parent / "workflows"


@pytest.fixture
def runner(surface, session, candidates):
    return StepRunner(surface, LocatorResolver(surface, session), candidates)


@pytest.fixture
def build_graph(session, candidates, fast_recovery, tmp_path):
    def _build(surface, max_retries=2):
        runner = StepRunner(surface, LocatorResolver(surface, session), candidates)
        executor = RecoveryExecutor(
            observer=PageObserver(surface),
            classifier=FallbackClassifier(candidates, fast_recovery),
            dispatcher=FixDispatcher(surface, session, candidates=candidates, recovery_settings=fast_recovery),
            session=session,
            max_retries=max_retries,
        )
        return WorkflowGraph(
            runner, executor, session,
            fix_cache_path=tmp_path / "fixes.json",
            step_delay_ms=0,
        )
    return _build


class TestWorkflowDefinition:
    """Test suite for workflow models and loading."""

    @pytest.mark.parametrize("step", [
        {"name": "go", "action": "navigate"},
        {"name": "type", "action": "fill"},
        {"name": "read", "action": "extract"},
        {"name": "read_all", "action": "extract_all"},
    ])
    def test_missing_required_params(self, step):
        with pytest.raises(ValidationError):
            WorkflowStep(**step)

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowStep(name="x", action="teleport")

    def test_load_workflow(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({
            "name": "demo",
            "steps": [
                {"name": "open", "action": "navigate", "url": "https://example.test"},
                {"name": "pause", "action": "wait", "wait_ms": 10},
            ],
        }))

        workflow = load_workflow(path)

        assert workflow.name == "demo"
        assert [s.action for s in workflow.steps] == [StepAction.NAVIGATE, StepAction.WAIT]
        assert workflow.steps[1].wait_ms == 10

    def test_bundled_workflow_is_valid(self):
        workflow = load_workflow(WORKFLOWS_DIR / "job_search.json")
        assert workflow.steps
        assert workflow.start_url


class TestStepRunner:
    """Test suite for StepRunner."""

    def test_candidate_precedence(self, runner, candidates):
        explicit = WorkflowStep(name="login", action="click", candidates=["#x"], candidate_key="apply")
        keyed = WorkflowStep(name="login", action="click", candidate_key="apply")
        by_context = WorkflowStep(name="login", action="click")

        assert runner.candidates_for(explicit) == ["#x"]
        assert runner.candidates_for(keyed) == candidates.get("apply")
        assert runner.candidates_for(by_context) == candidates.get("login")

    async def test_fill_expands_env_vars(self, runner, surface, monkeypatch):
        monkeypatch.setenv("NAV_TEST_USER", "alice")
        surface.visible = {'[name="email"]'}

        step = WorkflowStep(name="login_email", action="fill", value="${NAV_TEST_USER}")
        assert await runner.run(step) == '[name="email"]'
        assert surface.called("fill") == [("fill", '[name="email"]', "alice")]

    async def test_navigate(self, runner, surface):
        assert await runner.run(WorkflowStep(name="open", action="navigate", url="https://example.test/jobs")) is True
        assert surface.url == "https://example.test/jobs"

    async def test_missing_required_element_raises(self, runner):
        step = WorkflowStep(name="submit", action="click", candidates=["#nope"], timeout_ms=10)
        with pytest.raises(LocatorNotFoundError) as exc_info:
            await runner.run(step)
        assert exc_info.value.context == "submit"

    async def test_missing_optional_element_skips(self, runner, surface):
        step = WorkflowStep(name="apply_now", action="click", optional=True, timeout_ms=10)
        assert await runner.run(step) is None
        assert not surface.called("click")

    async def test_extract_reads_fields(self, runner, surface):
        surface.texts = {".title": "Engineer", ".company": "Acme"}
        step = WorkflowStep(
            name="read_details",
            action="extract",
            fields={"title": ".title", "company": ".company", "salary": ".salary"},
        )
        assert await runner.run(step) == {"title": "Engineer", "company": "Acme", "salary": None}

    async def test_extract_nothing_found(self, runner):
        fields = {"title": ".title"}
        with pytest.raises(LocatorNotFoundError):
            await runner.run(WorkflowStep(name="read_details", action="extract", fields=fields))
        assert await runner.run(
            WorkflowStep(name="read_details", action="extract", fields=fields, optional=True)
        ) is None


class ExplodingClickSurface(FakeSurface):
    """Clicks always fail with an error the keyword rules cannot place."""

    async def click(self, descriptor: str) -> None:
        self.calls.append(("click", descriptor))
        raise RuntimeError("element is detached from the DOM")


class TestWorkflowGraph:
    """Test suite for WorkflowGraph."""

    async def test_runs_all_steps(self, build_graph):
        surface = FakeSurface(visible={"#usernameField", "#go"}, texts={".title": "Engineer"})
        workflow = Workflow(
            name="happy",
            start_url="https://example.test/login",
            steps=[
                WorkflowStep(name="login_email", action="fill", candidate_key="login", value="a@b.c"),
                WorkflowStep(name="submit", action="click", candidates=["#go"]),
                WorkflowStep(name="pause", action="wait", wait_ms=5),
                WorkflowStep(name="read_details", action="extract", fields={"title": ".title"}),
            ],
        )

        final = await build_graph(surface).run(workflow)

        assert final.success
        assert final.completed_steps == ["login_email", "submit", "pause", "read_details"]
        assert final.records == [{"title": "Engineer"}]
        assert surface.calls[0] == ("navigate", "https://example.test/login")
        assert final.report["total_errors"] == 0

    async def test_heals_locator_and_exports_fix_cache(self, build_graph, tmp_path):
        surface = FakeSurface(visible={'[name="email"]'})
        workflow = Workflow(
            name="healing",
            steps=[WorkflowStep(name="login_email", action="fill", candidates=["#old-email"], value="x")],
        )

        final = await build_graph(surface).run(workflow)

        assert final.success
        assert surface.called("fill") == [("fill", '[name="email"]', "x")]
        assert final.report["fixed_errors"] == 1
        assert final.report["error_kind_counts"] == {"locator": 1}
        assert json.loads((tmp_path / "fixes.json").read_text()) == {"login_email": '[name="email"]'}

    async def test_aborts_on_unrecoverable_step(self, build_graph):
        surface = FakeSurface(visible={"#go"})
        workflow = Workflow(
            name="broken",
            steps=[
                WorkflowStep(name="submit", action="click", candidates=["#missing"], timeout_ms=10),
                WorkflowStep(name="after", action="click", candidates=["#go"]),
            ],
        )

        final = await build_graph(surface).run(workflow)

        assert final.aborted
        assert not final.success
        assert final.failed_steps == ["submit"]
        assert "after" not in final.completed_steps
        assert "submit" in final.abort_reason
        assert not surface.called("click")
        assert final.report["total_errors"] == 2

    async def test_soft_failure_continues(self, build_graph):
        surface = ExplodingClickSurface(visible={"#go", "#next"})
        workflow = Workflow(
            name="soft",
            steps=[
                WorkflowStep(name="submit", action="click", candidates=["#go"]),
                WorkflowStep(name="optional_banner", action="click", candidates=["#absent"],
                             optional=True, timeout_ms=10),
                WorkflowStep(name="pause", action="wait", wait_ms=1),
            ],
        )

        final = await build_graph(surface, max_retries=2).run(workflow)

        assert not final.aborted
        assert final.failed_steps == ["submit"]
        assert final.completed_steps == ["optional_banner", "pause"]
        assert not final.success
        assert len(surface.called("click")) == 2

    async def test_empty_workflow_reports(self, build_graph):
        final = await build_graph(FakeSurface()).run(Workflow(name="empty"))
        assert final.success
        assert final.report["session"] == "empty"


class TestLoginFieldHealing:
    """Locator repair keeps each login field on its own candidates."""

    @pytest.fixture
    def build_executor(self, session, fast_recovery):
        def _build(surface, table):
            return RecoveryExecutor(
                observer=PageObserver(surface),
                classifier=FallbackClassifier(table, fast_recovery),
                dispatcher=FixDispatcher(surface, session, candidates=table, recovery_settings=fast_recovery),
                session=session,
                max_retries=2,
            )
        return _build

    @pytest.mark.parametrize("step_name", ["login_password", "login_submit"])
    async def test_bundled_step_never_lands_on_email_field(self, build_executor, session, step_name):
        surface = FakeSurface(visible={"#usernameField"})
        table = CandidateTable()
        workflow = load_workflow(WORKFLOWS_DIR / "job_search.json")
        step = next(s for s in workflow.steps if s.name == step_name).model_copy(update={"timeout_ms": 10})
        runner = StepRunner(surface, LocatorResolver(surface, session), table)

        with pytest.raises(LocatorNotFoundError):
            await build_executor(surface, table).execute_with_recovery(partial(runner.run, step), step.name)

        assert not surface.called("fill")
        assert not surface.called("click")
        assert session.cached_locator(step_name) is None

    async def test_stale_password_locator_heals_to_password_field(self, build_executor, session):
        surface = FakeSurface(visible={"#usernameField", '[type="password"]'})
        table = CandidateTable()
        step = WorkflowStep(name="login_password", action="fill", candidates=["#old-password"], value="s3cret")
        runner = StepRunner(surface, LocatorResolver(surface, session), table)

        await build_executor(surface, table).execute_with_recovery(partial(runner.run, step), step.name)

        assert surface.called("fill") == [("fill", '[type="password"]', "s3cret")]
        assert session.cached_locator("login_password") == '[type="password"]'


class TestPopupDismissal:
    """Test suite for dismiss_popups."""

    async def test_clicks_visible_popups_and_skips_broken_ones(self, runner, surface):
        surface.visible = {".modal-backdrop", ".close-btn"}
        surface.click_errors = {".close-btn": RuntimeError("element is detached from the DOM")}

        dismissed = await runner.run(WorkflowStep(name="close_overlays", action="dismiss_popups"))

        assert dismissed == 1
        assert surface.called("click") == [("click", ".modal-backdrop"), ("click", ".close-btn")]
        assert len(surface.called("wait")) == 1

    async def test_nothing_to_dismiss_still_completes(self, runner, surface):
        assert await runner.run(WorkflowStep(name="close_overlays", action="dismiss_popups")) == 0
        assert not surface.called("click")

    async def test_custom_selectors(self, runner, surface):
        surface.visible = {"#promo-close"}
        step = WorkflowStep(name="close_overlays", action="dismiss_popups", candidates=["#promo-close"])
        assert await runner.run(step) == 1

    async def test_pre_step_hook_runs_before_action(self, runner, surface):
        surface.visible = {".popup-overlay", "#usernameField"}
        step = WorkflowStep(name="login_email", action="fill", value="a@b.c", dismiss_popups=True)

        await runner.run(step)

        assert surface.calls[0] == ("click", ".popup-overlay")
        assert surface.calls[-1] == ("fill", "#usernameField", "a@b.c")


class NavigationDownSurface(FakeSurface):
    """Every navigation fails with a network error."""

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        self.calls.append(("navigate", url))
        raise RuntimeError("net::ERR_CONNECTION_RESET")


class TestSoftFailures:
    """Steps that give up without raising are never reported as completed."""

    async def test_failed_navigation_step_is_failed(self, build_graph):
        workflow = Workflow(
            name="offline",
            steps=[WorkflowStep(name="open_search", action="navigate", url="https://example.test/jobs")],
        )

        final = await build_graph(NavigationDownSurface()).run(workflow)

        assert final.failed_steps == ["open_search"]
        assert final.completed_steps == []
        assert not final.success
        assert final.report["total_errors"] == 2

    async def test_failed_start_url_aborts(self, build_graph):
        workflow = Workflow(
            name="offline",
            start_url="https://example.test/login",
            steps=[WorkflowStep(name="pause", action="wait", wait_ms=1)],
        )

        final = await build_graph(NavigationDownSurface()).run(workflow)

        assert final.aborted
        assert not final.success
        assert "https://example.test/login" in final.abort_reason
        assert final.completed_steps == []


def listing_step(**overrides) -> WorkflowStep:
    values = dict(
        name="process_job",
        action="extract_all",
        candidate_key="job",
        fields={"title": ".title"},
        next_candidates=["#next"],
        timeout_ms=10,
    )
    values.update(overrides)
    return WorkflowStep(**values)


class TestListingExtraction:
    """Test suite for extract_all steps."""

    async def test_reads_every_record_on_every_page(self, build_graph):
        surface = FakeSurface(
            visible={".jobTuple", "#next"},
            counts={".jobTuple": 2},
            texts={
                ".jobTuple >> nth=0 >> .title": "Engineer",
                ".jobTuple >> nth=1 >> .title": "Analyst",
            },
        )
        workflow = Workflow(name="listing", steps=[listing_step(max_pages=2)])

        final = await build_graph(surface).run(workflow)

        assert final.success
        assert [r["title"] for r in final.records] == ["Engineer", "Analyst", "Engineer", "Analyst"]
        assert surface.called("click") == [("click", "#next")]
        assert surface.called("wait_for_load_signal")

    async def test_limit_caps_records_per_page(self, build_graph):
        surface = FakeSurface(
            visible={".jobTuple"},
            counts={".jobTuple": 5},
            texts={f".jobTuple >> nth={i} >> .title": f"Role {i}" for i in range(5)},
        )
        final = await build_graph(surface).run(Workflow(name="listing", steps=[listing_step(limit=2)]))

        assert [r["title"] for r in final.records] == ["Role 0", "Role 1"]

    async def test_stops_when_there_is_no_next_page(self, build_graph):
        surface = FakeSurface(
            visible={".jobTuple"},
            counts={".jobTuple": 1},
            texts={".jobTuple >> nth=0 >> .title": "Engineer"},
        )
        final = await build_graph(surface).run(Workflow(name="listing", steps=[listing_step(max_pages=3)]))

        assert final.records == [{"title": "Engineer"}]
        assert not surface.called("click")

    async def test_broken_record_is_skipped_under_its_own_context(self, build_graph):
        surface = FakeSurface(
            visible={".jobTuple"},
            counts={".jobTuple": 3},
            texts={
                ".jobTuple >> nth=0 >> .title": "Engineer",
                ".jobTuple >> nth=2 >> .title": "Designer",
            },
        )
        final = await build_graph(surface).run(Workflow(name="listing", steps=[listing_step()]))

        assert final.success
        assert final.completed_steps == ["process_job"]
        assert [r["title"] for r in final.records] == ["Engineer", "Designer"]
        assert any("process_job_2" in message for message in final.report["error_frequency"])

    async def test_missing_listing_aborts_unless_optional(self, build_graph):
        surface = FakeSurface()
        step = listing_step(candidate_key=None, candidates=["#no-results"])

        final = await build_graph(surface).run(Workflow(name="listing", steps=[step]))
        assert final.aborted

        optional = step.model_copy(update={"optional": True})
        final = await build_graph(surface).run(Workflow(name="listing", steps=[optional]))
        assert final.completed_steps == ["process_job"]
        assert final.records == []
