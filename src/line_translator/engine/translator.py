"""
Translation engine.

Drives a run over an ordered list of lines (or timed cues):

1. **Batch**: slice the input at the ladder's current size
2. **Moderate**: optionally check the batch; flagged batches shrink
3. **Request**: encode via the strategy, throttle, retry transient failures
4. **Validate**: shape mismatch or multi-line refusal shrinks the ladder, or
   drops to single-line mode at the smallest size
5. **Emit**: one result per line, label drift flagged per line
6. **Grow**: after enough successful reduced-size batches, step back up

Execution is strictly sequential: each batch's context depends on the
translations emitted before it.
"""

import asyncio
from typing import Any, AsyncIterator, Coroutine, Iterator, Mapping, Optional, Sequence

import structlog

from line_translator.config import Settings, settings as default_settings
from line_translator.engine.context import ContextWindow
from line_translator.engine.ladder import BatchSizeLadder
from line_translator.engine.usage import UsageAccount
from line_translator.llm.base_client import BaseCompletionClient, BaseModerationClient, DeltaCallback
from line_translator.llm.moderator import Moderator, flagged_categories
from line_translator.llm.openai_client import OpenAIClient
from line_translator.llm.prompt_builder import DEFAULT_INSTRUCTION_TEMPLATE, PromptBuilder
from line_translator.llm.text_utils import (
    REDACTED_PLACEHOLDER,
    collapse_newlines,
    restore_line_breaks,
    split_number_label,
)
from line_translator.models.enums import FlagReason
from line_translator.models.llm_models import CompletionResponse
from line_translator.models.options import Language, TranslatorOptions
from line_translator.models.translation_models import (
    ModerationFlag,
    TimestampEntry,
    TranslationOutput,
    TranslationResult,
    WorkingEntry,
    describe_categories,
)
from line_translator.monitoring.metrics import moderation_flags_total, translation_batches_total
from line_translator.retry import CooldownLimiter, RetryPolicy
from line_translator.strategies import StructuredOutputStrategy, create_strategy
from line_translator.strategies.timestamp import align
from line_translator.validation import ValidationError

logger = structlog.get_logger(__name__)

FLAGGED_MODERATOR = "[Flagged][Moderator] {source} -> {translation}"
FLAGGED_MODEL = "[Flagged][Model] {source} -> {translation}"


class _Aborted(Exception):
    """Unwinds the run after abort()."""


class TranslationEngine:
    """
    Resilient batch translator.

    Attributes:
        options: Effective options (structured-mode overrides applied)
        strategy: Wire encoding of batches
        ladder: Batch size ladder
        usage: Token/cost account for the run
        working_progress: Resolved entries, in emission order
        moderator_flags: Flagged absolute indices, excluded from context
        offset: First input index to translate
        end: Exclusive upper bound (None for the whole input)
    """

    def __init__(
        self,
        language: Language,
        options: Optional[TranslatorOptions],
        completion_client: BaseCompletionClient,
        moderation_client: Optional[BaseModerationClient] = None,
        cooler: Optional[CooldownLimiter] = None,
        moderation_cooler: Optional[CooldownLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        strategy: Optional[StructuredOutputStrategy] = None,
        on_delta: Optional[DeltaCallback] = None,
        instruction_template: str = DEFAULT_INSTRUCTION_TEMPLATE,
    ):
        """
        Initialize engine.

        Args:
            language: Source/target language pair
            options: Run options (defaults when None)
            completion_client: Completion service port
            moderation_client: Moderation service port; the completion client
                is used when it implements both
            cooler: Rate limiter for completion requests
            moderation_cooler: Rate limiter for moderation requests
            retry_policy: Retry driver shared by both services
            strategy: Wire encoding; built from options.structured_mode when None
            on_delta: Receives text deltas when streaming
            instruction_template: Jinja2 template for the system instruction
        """
        self.language = language
        self.options = (options or TranslatorOptions()).for_strategy()
        self.completion_client = completion_client
        self.cooler = cooler
        self.retry_policy = retry_policy or RetryPolicy()
        self.on_delta = on_delta

        self.builder = PromptBuilder(language, self.options, instruction_template)
        self.strategy = strategy or create_strategy(self.builder, self.options)

        cap = self.strategy.max_batch_size
        if cap is not None and max(self.options.batch_sizes) > cap:
            raise ValueError(
                f"Batch sizes should not exceed {cap} for the {self.strategy.name} strategy, "
                f"got {self.options.batch_sizes}"
            )

        self.moderator: Optional[Moderator] = None
        if self.options.use_moderator:
            if moderation_client is None and isinstance(completion_client, BaseModerationClient):
                moderation_client = completion_client
            if moderation_client is None:
                logger.warning("Moderation enabled without a moderation client, skipping moderation")
            else:
                self.moderator = Moderator(moderation_client, self.retry_policy, moderation_cooler)

        self.ladder = BatchSizeLadder(self.options.batch_sizes)
        self.context_window = ContextWindow(self.options.history_mode, self.options.history_budget)
        self.usage = UsageAccount(self.options.model)

        self.working_progress: list[WorkingEntry] = []
        self.moderator_flags: dict[int, ModerationFlag] = {}
        self.offset = 0
        self.end: Optional[int] = None

        self._items: list[Any] = []
        self._aborted = False
        self._inflight: Optional[asyncio.Future] = None

    @classmethod
    def from_settings(
        cls,
        language: Language,
        options: Optional[TranslatorOptions] = None,
        app_settings: Settings = default_settings,
        **kwargs,
    ) -> "TranslationEngine":
        """Wire an engine to the OpenAI-compatible client and limiters from Settings."""
        if options is None:
            options = TranslatorOptions(
                model=app_settings.OPENAI_MODEL,
                fallback_model=app_settings.FALLBACK_MODEL,
            )
        client = OpenAIClient.from_settings(app_settings)
        return cls(
            language,
            options,
            completion_client=client,
            moderation_client=client,
            cooler=CooldownLimiter.for_completions(app_settings),
            moderation_cooler=CooldownLimiter.for_moderation(app_settings),
            retry_policy=RetryPolicy.from_settings(app_settings),
            **kwargs,
        )

    # === Public API ===

    def translate_lines(self, lines: Sequence[str]) -> AsyncIterator[TranslationResult]:
        """
        Translate lines, yielding one result per input line in order.

        Raises:
            LLMFatalError: Non-retryable service error
            RetryExhausted: Transient failures exceeded the retry ceiling
        """
        if self.strategy.timed:
            raise ValueError(f"{self.strategy.name} strategy translates timed entries, use translate_entries()")
        return self._start(list(lines))

    def translate_entries(self, entries: Sequence[TimestampEntry]) -> AsyncIterator[TranslationResult]:
        """
        Translate timed cues, yielding one result per output cue.

        The model may merge or split cues, so the number of results can
        differ from the number of inputs.
        """
        if not self.strategy.timed:
            raise ValueError(f"{self.strategy.name} strategy translates lines, use translate_lines()")
        return self._start(list(entries))

    def abort(self) -> None:
        """Stop the run: no further results, in-flight request cancelled."""
        self._aborted = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        logger.info("Abort requested")

    def seed(
        self,
        working_progress: Sequence[WorkingEntry],
        moderator_flags: Optional[Mapping[int, ModerationFlag]] = None,
        offset: Optional[int] = None,
    ) -> None:
        """
        Restore state from a checkpoint before resuming.

        Args:
            working_progress: Entries already resolved
            moderator_flags: Flags keyed by absolute index
            offset: First index to translate (defaults to the entry count)
        """
        self.working_progress = list(working_progress)
        self.moderator_flags = dict(moderator_flags or {})
        self.offset = len(self.working_progress) if offset is None else offset
        logger.info(
            "Engine seeded",
            entries=len(self.working_progress),
            flags=len(self.moderator_flags),
            offset=self.offset,
        )

    async def close(self) -> None:
        await self.completion_client.close()

    # === Run loop ===

    def _start(self, items: list[Any]) -> AsyncIterator[TranslationResult]:
        # An abort() issued before the first pull must still stop this run
        self._aborted = False
        return self._run(items)

    async def _run(self, items: list[Any]) -> AsyncIterator[TranslationResult]:
        self._items = items
        end = len(items) if self.end is None else min(self.end, len(items))
        index = self.offset
        reduced_sessions = 0

        logger.info(
            "Translation started",
            system_instruction=self.builder.system_instruction,
            strategy=self.strategy.name,
            items=len(items),
            offset=index,
            end=end,
            batch_size=self.ladder.current,
        )

        try:
            while index < end:
                self._check_aborted()
                batch = [
                    self.strategy.prepare_line(item, i, index)
                    for i, item in enumerate(items[index:min(index + self.ladder.current, end)])
                ]
                strategy = self.strategy.resolve(batch)

                if self.moderator is not None:
                    moderation = await self._cancellable(
                        self.moderator.check(strategy.moderation_text(batch))
                    )
                    if moderation.flagged:
                        self._count_batch("moderated")
                        if self.ladder.decrease():
                            reduced_sessions = 0
                            continue
                        async for result in self._translate_single(batch, index):
                            yield result
                        index += len(batch)
                        continue

                output = await self._request(strategy, batch)

                if self._is_mismatch(strategy, batch, output):
                    self.usage.record_wasted(output)
                    self._count_batch("refusal" if output.refusal else "mismatch")
                    logger.warning(
                        "Output mismatch",
                        strategy=strategy.name,
                        inputs=len(batch),
                        outputs=len(output.content),
                        refusal=output.refusal,
                    )
                    if self.ladder.decrease():
                        reduced_sessions = 0
                        continue
                    async for result in self._translate_single(batch, index):
                        yield result
                    index += len(batch)
                    self._log_usage()
                    continue

                self._count_batch("success")
                for result in self._emit(batch, output, index):
                    yield result
                index += len(batch)
                self._log_usage()

                if self.ladder.threshold is not None:
                    if reduced_sessions >= self.ladder.threshold:
                        reduced_sessions = 0
                        self.ladder.increase()
                    else:
                        reduced_sessions += 1

        except _Aborted:
            logger.info("Translation aborted", index=index)
            return

        logger.info("Translation finished", index=index, **self.usage.snapshot())

    async def _translate_single(self, batch: list[Any], offset: int) -> AsyncIterator[TranslationResult]:
        """Submit each line of a batch on its own."""
        logger.info("Single line mode", offset=offset, lines=len(batch))

        for i, line in enumerate(batch):
            position = offset + i
            strategy = self.strategy.resolve([line])

            if self.moderator is not None:
                moderation = await self._cancellable(self.moderator.check(strategy.moderation_text([line])))
                if moderation.flagged:
                    categories = flagged_categories(moderation)
                    self._flag(position, ModerationFlag(reason=FlagReason.MODERATION, categories=categories))
                    yield self._emit_flagged(position, line, describe_categories(categories))
                    continue

            output = await self._request(strategy, [line])
            self._count_batch("single")

            if self.strategy.timed:
                yield self._emit_single_timed(position, line, output)
            else:
                yield self._emit_line(position, line, collapse_newlines(output.text), **_share(output, 1))

    # === Requests ===

    async def _request(
        self,
        strategy: StructuredOutputStrategy,
        batch: list[Any],
        model: Optional[str] = None,
    ) -> TranslationOutput:
        """
        Submit one batch through a strategy and decode the answer.

        Undecodable structured responses are resubmitted through the
        strategy's fallback (or returned empty when it has none); a
        single-line refusal is retried once with the fallback model.
        """
        selected = self.context_window.select(
            self.working_progress,
            self.moderator_flags,
            placeholder=lambda i: strategy.prepare_line(REDACTED_PLACEHOLDER, i, 0),
        )
        request = strategy.encode(batch, strategy.render_context(selected), model=model)
        response = await self._submit(request)

        try:
            output = strategy.decode(response, batch)
        except ValidationError as e:
            rejected = strategy.output_from(response, [])
            self.usage.record(rejected, response.latency_ms / 1000)
            if strategy.fallback is None:
                logger.warning("Undecodable structured response", strategy=strategy.name, error=str(e))
                return rejected
            self.usage.record_wasted(rejected)
            logger.warning(
                "Structured response rejected, falling back",
                strategy=strategy.name,
                fallback=strategy.fallback.name,
                error=str(e),
            )
            return await self._request(strategy.fallback, batch, model=model)

        self.usage.record(output, response.latency_ms / 1000)

        if len(batch) == 1 and output.refusal and model is None and self.options.fallback_model:
            logger.info("Refusal, retrying with fallback model", fallback_model=self.options.fallback_model)
            self.usage.record_wasted(output)
            return await self._request(strategy, batch, model=self.options.fallback_model)

        return output

    async def _submit(self, request) -> CompletionResponse:
        async def _call() -> CompletionResponse:
            if self.cooler is not None:
                await self.cooler.acquire()
            return await self.completion_client.complete(request, on_delta=self.on_delta)

        return await self._cancellable(self.retry_policy.run(_call, label="TranslationPrompt"))

    async def _cancellable(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Run coro as the in-flight task abort() may cancel."""
        if self._aborted:
            coro.close()
            raise _Aborted()

        task = asyncio.ensure_future(coro)
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._aborted and task.cancelled() and not (current is not None and current.cancelling()):
                raise _Aborted() from None
            raise
        finally:
            self._inflight = None

        self._check_aborted()
        return result

    def _check_aborted(self) -> None:
        if self._aborted:
            raise _Aborted()

    def _is_mismatch(self, strategy: StructuredOutputStrategy, batch: list[Any], output: TranslationOutput) -> bool:
        if len(batch) > 1 and output.refusal:
            return True
        return strategy.is_mismatch(batch, output, self.options.line_matching)

    # === Emission ===

    def _emit(self, batch: list[Any], output: TranslationOutput, offset: int) -> Iterator[TranslationResult]:
        if self.strategy.timed:
            share = _share(output, len(output.content))
            for entry in output.content:
                position, source = align(batch, entry)
                yield self._emit_line(
                    offset + position,
                    source,
                    entry.text,
                    source=source,
                    start=entry.start,
                    end=entry.end,
                    **share,
                )
            return

        share = _share(output, len(batch))
        for i, line in enumerate(batch):
            raw = output.content[i] if i < len(output.content) else ""
            yield self._emit_line(offset + i, line, str(raw), **share)

    def _emit_single_timed(self, position: int, entry: TimestampEntry, output: TranslationOutput) -> TranslationResult:
        result = output.content[0] if output.content else None
        if result is None:
            logger.warning("Empty output for single entry, using original", text=entry.text)
            result = entry
        return self._emit_line(
            position,
            entry.text,
            result.text,
            source=entry.text,
            start=result.start,
            end=result.end,
            **_share(output, 1),
        )

    def _emit_flagged(self, position: int, line: Any, description: str) -> TranslationResult:
        if isinstance(line, TimestampEntry):
            return self._emit_line(
                position, line.text, description, source=line.text, start=line.start, end=line.end
            )
        return self._emit_line(position, line, description)

    def _emit_line(
        self,
        position: int,
        sent: str,
        raw: str,
        *,
        source: Optional[str] = None,
        start: Optional[float] = None,
        end: Optional[float] = None,
        prompt_tokens: Optional[float] = None,
        completion_tokens: Optional[float] = None,
    ) -> TranslationResult:
        """Postprocess one translated line, record it and build its result."""
        if source is None:
            source = self._source_text(position)

        transform = final = raw
        flagged = False

        if position in self.moderator_flags:
            flagged = True
            final = FLAGGED_MODERATOR.format(source=source, translation=raw)
        elif self.options.prefix_number:
            number, text = split_number_label(raw)
            transform = final = text
            if number != position + 1:
                logger.warning("Label mismatch", expected=position + 1, received=number)
                self._flag(position, ModerationFlag(reason=FlagReason.LABEL_MISMATCH, out_index=number))
                flagged = True
                final = FLAGGED_MODEL.format(source=source, translation=text)
        else:
            transform = final = restore_line_breaks(raw)

        self.working_progress.append(
            WorkingEntry(
                index=position,
                source=sent,
                translation=raw,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                start=start,
                end=end,
            )
        )
        return TranslationResult(
            index=position,
            source=source,
            transform=transform,
            final_transform=final,
            flagged=flagged,
            start=start,
            end=end,
        )

    def _source_text(self, position: int) -> str:
        item = self._items[position]
        return item.text if isinstance(item, TimestampEntry) else item

    def _flag(self, position: int, flag: ModerationFlag) -> None:
        self.moderator_flags[position] = flag
        moderation_flags_total.labels(reason=flag.reason).inc()

    def _count_batch(self, outcome: str) -> None:
        translation_batches_total.labels(strategy=self.strategy.name, outcome=outcome).inc()

    def _log_usage(self) -> None:
        self.usage.log_usage(rate=self.cooler.rate if self.cooler is not None else None)


def _share(output: TranslationOutput, count: int) -> dict[str, Optional[float]]:
    """
    Split a batch's usage evenly across its rows.

    An approximation: lines of different length cost different amounts, but
    the service only reports usage per request.
    """
    if count == 0:
        return {}
    return {
        "prompt_tokens": output.prompt_tokens / count,
        "completion_tokens": output.completion_tokens / count,
    }
