"""
bgresearch.operations.orchestrator — The Completion Orchestrator.

``CompletionOrchestrator.run()`` is the whole core: it takes a validated
``Query`` and always comes back with exactly one outcome, ``Success`` or
``Failure``. It never raises past its own boundary; the only thing allowed
through is task cancellation, so a disconnected client can abort the
upstream call.

The orchestrator holds no per-request state. The frozen config, the compiled
graph and the adapter's connection pool are shared by every concurrent run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from bgresearch.adapters import create_adapter
from bgresearch.adapters.base import BaseAdapter
from bgresearch.core.errors import ConfigurationError
from bgresearch.core.models import (
    Failure,
    FailureKind,
    PromptPair,
    ProviderConfig,
    Query,
    RequestOutcome,
    RunStage,
    Success,
)
from bgresearch.operations.classify import FAILURE_MESSAGES
from bgresearch.operations.state_machine import AnalysisGraphState, build_analysis_graph
from bgresearch.prompts import TEMPLATE_VERSION

logger = logging.getLogger("bgresearch.orchestrator")


@dataclass
class RunTrace:
    """Everything one run produced: the prompt sent, the path taken, the outcome."""
    outcome: RequestOutcome
    prompt: PromptPair | None = None
    stages: list[RunStage] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, Success)


class CompletionOrchestrator:
    """
    Builds the prompt, calls the provider under a timeout, and reduces or
    classifies the result.

    Absent credentials are a hard ``ConfigurationError`` at construction
    time; there is no canned offline answer.
    """

    def __init__(
        self,
        config: ProviderConfig,
        adapter: BaseAdapter,
        *,
        template_version: str = TEMPLATE_VERSION,
    ) -> None:
        if not config.has_credentials:
            raise ConfigurationError()
        self.config = config
        self.adapter = adapter
        self.template_version = template_version
        self._graph = build_analysis_graph(adapter, config, template_version).compile()

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CompletionOrchestrator":
        """Create the adapter for *config* and wrap it in an orchestrator."""
        return cls(config, create_adapter(config, transport=transport))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def run(self, query: Query) -> RequestOutcome:
        """Run one query to its outcome."""
        return (await self.trace(query)).outcome

    async def trace(self, query: Query) -> RunTrace:
        """Like ``run()``, but also return the prompt and the stages visited."""
        initial_state: AnalysisGraphState = {
            "query": query,
            "prompt": None,
            "response": None,
            "error": None,
            "outcome": None,
            "stages": [RunStage.VALIDATED],
        }

        try:
            final_state = await self._graph.ainvoke(initial_state)
        except Exception:
            # Anything the nodes did not anticipate still ends as an outcome
            logger.exception("Analysis graph failed unexpectedly")
            return RunTrace(
                outcome=Failure(
                    kind=FailureKind.UNKNOWN,
                    message=FAILURE_MESSAGES[FailureKind.UNKNOWN],
                ),
                stages=[RunStage.VALIDATED, RunStage.FAILED],
            )

        outcome = final_state.get("outcome")
        if outcome is None:
            logger.error("Analysis graph finished without an outcome")
            outcome = Failure(
                kind=FailureKind.UNKNOWN,
                message=FAILURE_MESSAGES[FailureKind.UNKNOWN],
            )

        if isinstance(outcome, Success):
            logger.info(
                "Analysis succeeded: summary=%d chars tokens=%d model=%s",
                len(outcome.summary),
                outcome.metadata.tokens_used,
                outcome.metadata.model,
            )
        else:
            logger.warning("Analysis failed: kind=%s", outcome.kind.value)

        return RunTrace(
            outcome=outcome,
            prompt=final_state.get("prompt"),
            stages=list(final_state.get("stages", [])),
        )

    async def close(self) -> None:
        await self.adapter.close()
