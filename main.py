"""
Self-Healing Navigator - Main Entry Point

Runs a declarative browser workflow with automatic error classification
and repair. Pauses for human-verification challenges until Enter is pressed.

Usage:
    python main.py workflows/job_search.json
    python main.py --headless --max-retries 5 workflows/job_search.json
    python main.py --fix-cache fixes.json workflows/job_search.json
"""

import asyncio
import argparse
import sys
from pathlib import Path

from healing_navigator.agent.classifier import FallbackClassifier, OracleClassifier
from healing_navigator.agent.executor import RecoveryExecutor
from healing_navigator.agent.graph import WorkflowGraph, WorkflowRunState
from healing_navigator.agent.oracle import Oracle
from healing_navigator.agent.recovery import FixDispatcher, ResumeGate
from healing_navigator.agent.workflow import StepRunner, load_workflow
from healing_navigator.browser.controller import BrowserController
from healing_navigator.browser.locators import CandidateTable, LocatorResolver
from healing_navigator.vision.observer import PageObserver
from healing_navigator.utils.logger import agent_logger as logger
from healing_navigator.utils.state import SessionState
from config import settings


async def console_resumer(gate: ResumeGate, prompt=input):
    """Resume the session from the terminal whenever it pauses."""
    while True:
        await gate.wait_until_paused()
        await asyncio.to_thread(prompt, "Press Enter once the challenge is solved... ")
        gate.resume()
        # Only prompt again once the paused session has actually picked up the resume
        await gate.wait_until_resumed()


async def run_workflow(
    workflow_path: Path,
    headless: bool = False,
    max_retries: int = None,
    fix_cache: Path = None,
    use_oracle: bool = True
) -> WorkflowRunState:
    """
    Run a workflow file end to end.

    Args:
        workflow_path: JSON workflow definition
        headless: Run browser in headless mode
        max_retries: Attempts per operation (uses settings if not provided)
        fix_cache: JSON file to load discovered locators from and save them to
        use_oracle: Consult Gemini before the keyword fallback
    """
    workflow = load_workflow(workflow_path)
    logger.banner("Self-Healing Navigator")
    logger.info(f"Workflow: {workflow.name} ({len(workflow.steps)} steps)")

    session = SessionState()
    fix_cache = fix_cache or settings.recovery.fix_cache_path
    if fix_cache:
        loaded = session.load_fix_cache(fix_cache)
        logger.info(f"Loaded {loaded} cached locator(s) from {fix_cache}")

    candidates = CandidateTable()
    browser = BrowserController(headless=headless)
    gate = ResumeGate()
    resumer = None

    try:
        await browser.initialize()

        oracle = Oracle() if use_oracle and settings.llm.enabled and settings.llm.google_api_key else None
        fallback = FallbackClassifier(candidates)
        classifier = OracleClassifier(oracle, fallback) if oracle else fallback

        dispatcher = FixDispatcher(browser, session, candidates=candidates, oracle=oracle, gate=gate)
        executor = RecoveryExecutor(
            observer=PageObserver(browser),
            classifier=classifier,
            dispatcher=dispatcher,
            session=session,
            max_retries=max_retries,
        )
        runner = StepRunner(browser, LocatorResolver(browser, session), candidates)
        navigator = WorkflowGraph(runner, executor, session, fix_cache_path=fix_cache)

        logger.thought(
            "Navigator initialized with:\n"
            f"  - Browser: Chromium ({'headless' if headless else 'visible'})\n"
            f"  - Classifier: {'Gemini ' + settings.llm.model_name if oracle else 'keyword rules'}\n"
            f"  - Max retries: {executor.max_retries}"
        )

        resumer = asyncio.create_task(console_resumer(gate))
        final_state = await navigator.run(workflow)

        if final_state.success:
            logger.success(f"Workflow completed: {len(final_state.completed_steps)} step(s)")
        elif final_state.aborted:
            logger.warning(final_state.abort_reason)
        else:
            logger.warning(f"Workflow finished with failed steps: {', '.join(final_state.failed_steps)}")

        if final_state.records:
            logger.show_json({"records": final_state.records}, "Extracted Records")

        return final_state

    finally:
        if resumer:
            resumer.cancel()
        await browser.close()


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Self-Healing Navigator - resilient browser workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py workflows/job_search.json
  python main.py --headless workflows/job_search.json
  python main.py --fix-cache fixes.json --max-retries 5 workflows/job_search.json
        """
    )

    parser.add_argument(
        "workflow",
        type=Path,
        help="Path to a workflow JSON file"
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode"
    )

    parser.add_argument(
        "--max-retries", "-r",
        type=int,
        default=None,
        help=f"Attempts per operation (default: {settings.recovery.max_retries})"
    )

    parser.add_argument(
        "--fix-cache", "-c",
        type=Path,
        default=None,
        help="JSON file for persisting discovered locators between runs"
    )

    parser.add_argument(
        "--no-oracle",
        action="store_true",
        help="Classify errors with keyword rules only"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    if args.debug:
        logger.set_level("DEBUG")

    try:
        result = asyncio.run(run_workflow(
            workflow_path=args.workflow,
            headless=args.headless,
            max_retries=args.max_retries,
            fix_cache=args.fix_cache,
            use_oracle=not args.no_oracle,
        ))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(130)

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
