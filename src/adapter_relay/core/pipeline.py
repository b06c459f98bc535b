"""Adapter pipeline - sequences adapter calls around the LLM call."""

import time
import uuid
from typing import Any, Awaitable, Callable, Mapping, Sequence

from adapter_relay.core.client import AdapterClient
from adapter_relay.exceptions import PipelineStepError
from adapter_relay.models import (
    OUTPUT_KEY,
    AdapterContext,
    AdapterResponse,
    PipelineResult,
    merge_context,
)
from adapter_relay.utils import get_logger

logger = get_logger(__name__)

LLMCall = Callable[[str | None, AdapterContext], Awaitable[str | None]]


class AdapterPipeline:
    """Orchestrates adapter calls before and after the LLM.

    Coordinates:
    1. Before-LLM steps (sequential, output chained into the prompt)
    2. LLM call
    3. After-LLM steps (sequential, side effects)
    4. Parallel fan-out (independent, order preserving)

    Context is never modified in place: every step sees a freshly merged
    copy and the caller's mapping stays untouched.
    """

    def __init__(self, client: AdapterClient) -> None:
        """Initialize pipeline.

        Args:
            client: Resilient adapter client
        """
        self.client = client

    async def _run_step(
        self,
        index: int,
        adapter_id: str,
        input: str | None,
        context: AdapterContext,
    ) -> AdapterResponse:
        response = await self.client.call(adapter_id, input, context)
        if not response.ok:
            logger.error(
                "pipeline.step_failed",
                step=index,
                adapter_id=adapter_id,
                error=response.error,
            )
            raise PipelineStepError(adapter_id, response.error, index, context)
        return response

    async def run_before_llm(
        self,
        input: str | None,
        adapter_ids: Sequence[str],
        context: Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """Run adapters in order, chaining outputs into the prompt.

        Args:
            input: Initial prompt/input
            adapter_ids: Adapters in execution order
            context: Initial context

        Returns:
            Final prompt and merged context

        Raises:
            PipelineStepError: A step returned an error; later steps skipped
        """
        current_input = input
        current_context = merge_context(context)

        for index, adapter_id in enumerate(adapter_ids):
            response = await self._run_step(index, adapter_id, current_input, current_context)
            if response.output is not None:
                current_input = response.output
            current_context = merge_context(current_context, response.context_update())

        return PipelineResult(prompt=current_input, context=current_context)

    async def run_after_llm(
        self,
        context: Mapping[str, Any] | None,
        adapter_ids: Sequence[str],
    ) -> AdapterContext:
        """Run side-effect adapters in order.

        Each step receives ``context["output"]`` as input. Outputs are not
        chained, but context contributions are merged for later steps.

        Returns:
            Context after the last step
        """
        current_context = merge_context(context)

        for index, adapter_id in enumerate(adapter_ids):
            response = await self._run_step(
                index,
                adapter_id,
                current_context.get(OUTPUT_KEY),
                current_context,
            )
            current_context = merge_context(current_context, response.context_update())

        return current_context

    async def run_parallel(
        self,
        input: str | None,
        adapter_ids: Sequence[str],
        context: Mapping[str, Any] | None = None,
    ) -> list[AdapterResponse]:
        """Run adapters concurrently; results follow ``adapter_ids`` order."""
        return await self.client.batch_call_adapters(adapter_ids, input, merge_context(context))

    async def execute(
        self,
        input: str | None,
        llm: LLMCall,
        before: Sequence[str] = (),
        after: Sequence[str] = (),
        context: Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """Run the full before-LLM, LLM, after-LLM sequence.

        Args:
            input: User input
            llm: Async callable receiving the prompt and context
            before: Adapters run before the LLM
            after: Adapters run after the LLM
            context: Initial context

        Returns:
            LLM reply as ``prompt`` and the final context
        """
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        logger.info(
            "pipeline.start",
            request_id=request_id,
            before=len(before),
            after=len(after),
        )

        prepared = await self.run_before_llm(input, before, context)
        reply = await llm(prepared.prompt, prepared.context)
        final_context = await self.run_after_llm(
            merge_context(prepared.context, {OUTPUT_KEY: reply}),
            after,
        )

        logger.info(
            "pipeline.complete",
            request_id=request_id,
            response_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return PipelineResult(prompt=reply, context=final_context)


def create_pipeline(client: AdapterClient) -> AdapterPipeline:
    """Factory for adapter pipeline.

    Args:
        client: Resilient adapter client

    Returns:
        Configured pipeline
    """
    return AdapterPipeline(client)
