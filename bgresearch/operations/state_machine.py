"""
bgresearch.operations.state_machine — LangGraph state machine for one analysis.

Each request walks the same path exactly once:

    validated → prompt_built → awaiting_upstream → succeeded | failed

Validation happens before the graph is entered (the orchestrator seeds the
``validated`` stage); the graph owns everything from prompt construction to
the terminal outcome. The upstream call is the only suspension point.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TypedDict

from langgraph.graph import END, START, StateGraph

from bgresearch.adapters.base import BaseAdapter
from bgresearch.core.errors import EmptyResponseError
from bgresearch.core.models import (
    AnalysisMetadata,
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionResult,
    Failure,
    PromptPair,
    ProviderConfig,
    Query,
    RunStage,
    Success,
)
from bgresearch.operations.classify import classify_failure
from bgresearch.prompts import TEMPLATE_VERSION, build_prompt

logger = logging.getLogger("bgresearch.state_machine")


# ---------------------------------------------------------------------------
# LangGraph State
# ---------------------------------------------------------------------------

class AnalysisGraphState(TypedDict, total=False):
    """State flowing through the analysis state machine."""
    # Input
    query: Query
    # Intermediate
    prompt: PromptPair | None
    response: ChatCompletionResponse | None
    error: Exception | None
    # Output
    outcome: Success | Failure | None
    # Trace
    stages: list[RunStage]


# ---------------------------------------------------------------------------
# Result reduction
# ---------------------------------------------------------------------------

def reduce_completion(response: ChatCompletionResponse, fallback_model: str) -> CompletionResult:
    """
    Reduce a provider response to its first completion's text.

    Zero choices, ``None`` content and whitespace-only content are failures,
    not empty successes.
    """
    if not response.choices:
        raise EmptyResponseError("Provider returned no choices")

    choice = response.choices[0]
    content = choice.message.content
    if isinstance(content, list):
        # Content-part arrays: keep the text parts in order
        content = "".join(
            part["text"]
            for part in content
            if isinstance(part, dict)
            and part.get("type") == "text"
            and isinstance(part.get("text"), str)
        )
    if not content or not content.strip():
        raise EmptyResponseError("Provider returned empty content")

    return CompletionResult(
        summary=content,
        model=response.model or fallback_model,
        usage=response.usage,
        finish_reason=choice.finish_reason,
    )


# ---------------------------------------------------------------------------
# LangGraph Nodes
# ---------------------------------------------------------------------------

def build_analysis_graph(
    adapter: BaseAdapter,
    config: ProviderConfig,
    template_version: str = TEMPLATE_VERSION,
) -> StateGraph:
    """
    Construct the state machine for a single query-to-summary run.

    Graph topology:
        START → build_prompt → call_upstream
          ├─ (response)  → reduce_response
          │                 ├─ (summary) → END
          │                 └─ (empty)   → classify_failure → END
          └─ (exception) → classify_failure → END
    """

    def build_prompt_node(state: AnalysisGraphState) -> AnalysisGraphState:
        """Pair the fixed instructions with the validated query."""
        state["prompt"] = build_prompt(state["query"], template_version)
        state["stages"] = [*state.get("stages", []), RunStage.PROMPT_BUILT]
        return state

    async def call_upstream_node(state: AnalysisGraphState) -> AnalysisGraphState:
        """
        Issue exactly one chat-completion request, bounded by ``timeout_ms``.

        Every ``Exception`` is captured for classification. Cancellation is
        not an ``Exception`` and propagates, aborting the in-flight request.
        """
        state["stages"] = [*state.get("stages", []), RunStage.AWAITING_UPSTREAM]
        prompt = state["prompt"]
        assert prompt is not None

        request = ChatCompletionRequest(
            model=config.model,
            messages=prompt.to_messages(),
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        try:
            async with asyncio.timeout(config.timeout_seconds):
                state["response"] = await adapter.complete(request)
        except Exception as exc:
            logger.warning("Upstream call failed: %s", type(exc).__name__)
            state["response"] = None
            state["error"] = exc
        return state

    def reduce_response_node(state: AnalysisGraphState) -> AnalysisGraphState:
        """Turn the provider response into a ``Success``, or hand off an empty one."""
        response = state["response"]
        assert response is not None
        try:
            result = reduce_completion(response, config.model)
        except Exception as exc:
            # Empty or unreadable, either way it is classified as a failure
            state["error"] = exc
            return state

        state["outcome"] = Success(
            summary=result.summary,
            query=state["query"].text,
            metadata=AnalysisMetadata(
                model=result.model,
                tokens_used=result.usage.total_tokens,
            ),
        )
        state["stages"] = [*state.get("stages", []), RunStage.SUCCEEDED]
        return state

    def classify_failure_node(state: AnalysisGraphState) -> AnalysisGraphState:
        """Convert the captured exception into a ``Failure`` outcome."""
        error = state.get("error")
        assert error is not None
        state["outcome"] = classify_failure(error)
        state["stages"] = [*state.get("stages", []), RunStage.FAILED]
        return state

    # -- Build graph -------------------------------------------------------
    graph = StateGraph(AnalysisGraphState)

    graph.add_node("build_prompt", build_prompt_node)
    graph.add_node("call_upstream", call_upstream_node)
    graph.add_node("reduce_response", reduce_response_node)
    graph.add_node("classify_failure", classify_failure_node)

    graph.add_edge(START, "build_prompt")
    graph.add_edge("build_prompt", "call_upstream")

    def upstream_decision(state: AnalysisGraphState) -> str:
        return "reduce_response" if state.get("response") is not None else "classify_failure"

    graph.add_conditional_edges("call_upstream", upstream_decision, {
        "reduce_response": "reduce_response",
        "classify_failure": "classify_failure",
    })

    def reduce_decision(state: AnalysisGraphState) -> str:
        return "done" if state.get("outcome") is not None else "classify_failure"

    graph.add_conditional_edges("reduce_response", reduce_decision, {
        "done": END,
        "classify_failure": "classify_failure",
    })

    graph.add_edge("classify_failure", END)

    return graph
