"""
LangGraph-based workflow runner.
Walks a workflow step by step, each step under execute_with_recovery, then reports.
"""

import asyncio
from functools import partial
from pathlib import Path
from typing import Literal, Optional, Any
from pydantic import BaseModel, Field

from langgraph.graph import StateGraph, END

from config.settings import settings
from healing_navigator.agent.executor import RecoveryExecutor
from healing_navigator.agent.workflow import StepAction, StepRunner, Workflow, WorkflowStep
from healing_navigator.exceptions import WorkflowAbortedError
from healing_navigator.utils.logger import agent_logger as logger
from healing_navigator.utils.state import SessionState


class WorkflowRunState(BaseModel):
    """State flowing through the workflow graph."""
    workflow: Workflow
    step_index: int = 0

    completed_steps: list[str] = Field(default_factory=list)
    failed_steps: list[str] = Field(default_factory=list)
    records: list[dict[str, Any]] = Field(default_factory=list)

    aborted: bool = False
    abort_reason: str = ""
    report: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return self.aborted or self.step_index >= len(self.workflow.steps)

    @property
    def success(self) -> bool:
        return not self.aborted and not self.failed_steps


class WorkflowGraph:
    """
    start -> step (loops until done or aborted) -> report
    """

    def __init__(
        self,
        runner: StepRunner,
        executor: RecoveryExecutor,
        session: SessionState,
        fix_cache_path: Optional[Path] = None,
        step_delay_ms: int = None
    ):
        self.runner = runner
        self.executor = executor
        self.session = session
        self.fix_cache_path = fix_cache_path
        self.step_delay_ms = step_delay_ms if step_delay_ms is not None else settings.browser.action_delay_ms

        self.graph = self._build_graph()
        self.app = self.graph.compile()

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph state machine."""
        graph = StateGraph(WorkflowRunState)

        graph.add_node("start", self._start_node)
        graph.add_node("step", self._step_node)
        graph.add_node("report", self._report_node)

        graph.set_entry_point("start")

        graph.add_conditional_edges(
            "start",
            self._route_next,
            {
                "step": "step",
                "report": "report",
            }
        )
        graph.add_conditional_edges(
            "step",
            self._route_next,
            {
                "step": "step",
                "report": "report",
            }
        )
        graph.add_edge("report", END)

        return graph

    async def _start_node(self, state: WorkflowRunState) -> dict:
        """Open the start URL, if any, under recovery."""
        workflow = state.workflow
        logger.info(f"[Start] {workflow.name}: {len(workflow.steps)} step(s)")

        if not workflow.start_url:
            return {"step_index": state.step_index}

        try:
            opened = await self.executor.execute_with_recovery(
                partial(self.runner.open, workflow.start_url),
                "start_navigation",
            )
        except Exception as e:
            abort = WorkflowAbortedError("start_navigation", e)
            logger.error(str(abort), exception=e)
            return {"aborted": True, "abort_reason": str(abort)}

        if opened is None:
            reason = f"Could not open start URL {workflow.start_url}"
            logger.warning(reason)
            return {"aborted": True, "abort_reason": reason}

        return {"step_index": state.step_index}

    async def _step_node(self, state: WorkflowRunState) -> dict:
        """Run the current step through the recovery executor."""
        step = state.workflow.steps[state.step_index]
        logger.info(f"[Step {state.step_index + 1}/{len(state.workflow.steps)}] {step.name}")

        update: dict[str, Any] = {"step_index": state.step_index + 1}

        try:
            if step.action == StepAction.EXTRACT_ALL:
                new_records = await self._run_listing(step)
                result = new_records or None
            else:
                result = await self.executor.execute_with_recovery(
                    partial(self.runner.run, step),
                    step.name,
                    step.max_retries,
                )
                new_records = [result] if isinstance(result, dict) else []
        except Exception as e:
            abort = WorkflowAbortedError(step.name, e)
            logger.error(str(abort), exception=e)
            update.update({
                "aborted": True,
                "abort_reason": str(abort),
                "failed_steps": state.failed_steps + [step.name],
            })
            return update

        if result is None and not step.optional:
            logger.warning(f"Step '{step.name}' gave no result; continuing")
            update["failed_steps"] = state.failed_steps + [step.name]
        else:
            update["completed_steps"] = state.completed_steps + [step.name]

        if new_records:
            update["records"] = state.records + new_records

        if self.step_delay_ms and state.step_index + 1 < len(state.workflow.steps):
            await asyncio.sleep(self.step_delay_ms / 1000)

        return update

    async def _run_listing(self, step: WorkflowStep) -> list[dict[str, Any]]:
        """
        Extract one record per container match, page by page.

        Each record is read under its own context (``<step>_<n>``), so a broken
        record is recovered or skipped without failing the listing.
        """
        records: list[dict[str, Any]] = []
        number = 0

        for page in range(1, step.max_pages + 1):
            listing = await self.executor.execute_with_recovery(
                partial(self.runner.listing, step),
                step.name,
                step.max_retries,
            )
            if listing is None:
                break

            container, total = listing
            logger.info(f"[Listing] {step.name} page {page}: {total} record(s)")

            for index in range(total):
                number += 1
                context = f"{step.name}_{number}"
                try:
                    record = await self.executor.execute_with_recovery(
                        partial(self.runner.extract_record, step, container, index),
                        context,
                        step.max_retries,
                    )
                except Exception as e:
                    logger.warning(f"Skipping record '{context}': {e}")
                    continue
                if record is not None:
                    records.append(record)

            if page == step.max_pages:
                break

            moved = await self.executor.execute_with_recovery(
                partial(self.runner.next_page, step),
                f"{step.name}_next_page",
                step.max_retries,
            )
            if moved is None:
                break

        return records

    async def _report_node(self, state: WorkflowRunState) -> dict:
        """Summarize the session and persist the fix cache."""
        logger.banner("Workflow Complete" if not state.aborted else "Workflow Aborted")

        snapshot = self.session.snapshot()
        logger.session_summary(snapshot)

        if self.fix_cache_path and self.session.fix_cache:
            self.session.export_fix_cache(self.fix_cache_path)
            logger.info(f"Fix cache saved to {self.fix_cache_path}")

        return {"report": snapshot}

    def _route_next(self, state: WorkflowRunState) -> Literal["step", "report"]:
        if state.is_done:
            return "report"
        return "step"

    async def run(self, workflow: Workflow) -> WorkflowRunState:
        """
        Run a workflow to completion or abort.

        Args:
            workflow: Validated workflow definition

        Returns:
            Final WorkflowRunState
        """
        logger.banner(f"Running workflow: {workflow.name}")
        self.session.start_session(workflow.name)

        initial = WorkflowRunState(workflow=workflow)
        final = await self.app.ainvoke(
            initial,
            config={"recursion_limit": len(workflow.steps) + 10},
        )
        if isinstance(final, dict):
            final = WorkflowRunState.model_validate(final)
        return final
