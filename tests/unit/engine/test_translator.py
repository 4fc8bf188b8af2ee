"""
Unit tests for TranslationEngine.

Covers the batch state machine against mocked completion/moderation clients:
shrink on mismatch, single-line fallback, moderation gating, label drift,
grow-back, refusals, error propagation, abort and resume.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from line_translator.engine.translator import TranslationEngine
from line_translator.llm.exceptions import LLMFatalError, LLMServerError
from line_translator.models.enums import FlagReason, MessageRole, StructuredMode
from line_translator.models.llm_models import CompletionRequest
from line_translator.models.options import TranslatorOptions
from line_translator.models.translation_models import ModerationFlag, TimestampEntry, WorkingEntry
from line_translator.retry.exceptions import RetryExhausted
from tests.fixtures import make_client, user_lines


async def collect(results) -> list:
    return [result async for result in results]


def sent_batches(client: AsyncMock) -> list[list[str]]:
    return [user_lines(call.args[0]) for call in client.complete.await_args_list]


@pytest.fixture
def make_engine(french, mock_completion_client, retry_policy):
    """Factory fixture building an engine with moderation off by default."""
    def _create(client=None, moderation_client=None, **option_overrides):
        options = TranslatorOptions(**{"use_moderator": False, **option_overrides})
        return TranslationEngine(
            french,
            options,
            client or mock_completion_client,
            moderation_client=moderation_client,
            retry_policy=retry_policy,
        )
    return _create


# ============================================================================
# Happy path
# ============================================================================


@pytest.mark.asyncio
async def test_translates_all_lines_in_order(make_engine, mock_completion_client):
    engine = make_engine()
    lines = [f"line {i}" for i in range(25)]

    results = await collect(engine.translate_lines(lines))

    assert [r.index for r in results] == list(range(25))
    assert [r.transform for r in results] == lines
    assert [r.source for r in results] == lines
    assert not any(r.flagged for r in results)
    assert mock_completion_client.complete.await_count == 1
    assert len(engine.working_progress) == 25


@pytest.mark.asyncio
async def test_system_instruction_and_labels_sent(make_engine, mock_completion_client):
    engine = make_engine()

    await collect(engine.translate_lines(["Hello", "World"]))

    request: CompletionRequest = mock_completion_client.complete.await_args.args[0]
    assert request.messages[0].role == MessageRole.SYSTEM.value
    assert request.messages[0].content == "Translate English to French"
    assert request.messages[-1].content == "1. Hello\n\n2. World"


@pytest.mark.asyncio
async def test_batch_usage_split_across_entries(make_engine, make_response):
    client = make_client(lambda request, on_delta=None: make_response(
        "\n".join(user_lines(request)), prompt_tokens=40, completion_tokens=20
    ))
    engine = make_engine(client)

    await collect(engine.translate_lines(["a", "b", "c", "d"]))

    assert [e.prompt_tokens for e in engine.working_progress] == [10, 10, 10, 10]
    assert [e.completion_tokens for e in engine.working_progress] == [5, 5, 5, 5]
    assert engine.usage.tokens_used == 60


@pytest.mark.asyncio
async def test_context_sent_with_next_batch(make_engine, mock_completion_client):
    engine = make_engine(batch_sizes=[2], history_budget=10)

    await collect(engine.translate_lines(["a", "b", "c"]))

    second: CompletionRequest = mock_completion_client.complete.await_args_list[1].args[0]
    assert [m.content for m in second.messages[1:]] == [
        "1. a\n\n2. b",
        "1. a\n\n2. b",
        "3. c",
    ]


# ============================================================================
# Shrink / single-line fallback
# ============================================================================


@pytest.mark.asyncio
async def test_mismatch_shrinks_ladder_and_resubmits_in_chunks(make_engine, make_response):
    """[2, 10] ladder: 9 lines back for 10 sent -> resubmitted in chunks of 2."""
    calls = 0

    def handler(request, on_delta=None):
        nonlocal calls
        calls += 1
        lines = user_lines(request)
        if calls == 1:
            lines = lines[:-1]
        return make_response("\n".join(lines))

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[2, 10])
    lines = [f"line {i}" for i in range(10)]

    results = await collect(engine.translate_lines(lines))

    assert engine.ladder.current == 2
    assert [len(batch) for batch in sent_batches(client)] == [10, 2, 2, 2, 2, 2]
    assert [r.transform for r in results] == lines
    assert engine.usage.tokens_wasted == 20


@pytest.mark.asyncio
async def test_grows_back_after_threshold(make_engine, make_response):
    calls = 0

    def handler(request, on_delta=None):
        nonlocal calls
        calls += 1
        lines = user_lines(request)
        return make_response("\n".join(lines[:-1] if calls == 1 else lines))

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[2, 10])

    results = await collect(engine.translate_lines([f"l{i}" for i in range(30)]))

    assert len(results) == 30
    assert [len(batch) for batch in sent_batches(client)] == [10, 2, 2, 2, 2, 2, 2, 10, 8]
    assert engine.ladder.current == 10
    assert engine.ladder.threshold is None


@pytest.mark.asyncio
async def test_single_line_mode_at_smallest_size(make_engine, make_response):
    def handler(request, on_delta=None):
        lines = user_lines(request)
        if len(lines) > 1:
            return make_response("everything on one line")
        return make_response(lines[0].replace("line", "ligne") + "\nextra")

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[3])

    results = await collect(engine.translate_lines(["line a", "line b", "line c"]))

    assert [len(batch) for batch in sent_batches(client)] == [3, 1, 1, 1]
    # Newlines of single answers are collapsed
    assert [r.transform for r in results] == ["ligne a extra", "ligne b extra", "ligne c extra"]


@pytest.mark.asyncio
async def test_result_count_matches_input_under_repeated_mismatch(make_engine, make_response):
    def handler(request, on_delta=None):
        lines = user_lines(request)
        return make_response("\n".join(lines[:-1] if len(lines) > 3 else lines))

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[1, 3, 10])

    results = await collect(engine.translate_lines([f"line {i}" for i in range(23)]))

    assert [r.index for r in results] == list(range(23))
    assert not any(r.flagged for r in results)


@pytest.mark.asyncio
async def test_line_matching_disabled_accepts_short_output(make_engine, make_response):
    client = make_client(lambda request, on_delta=None: make_response(
        "\n".join(user_lines(request)[:-1])
    ))
    engine = make_engine(client, line_matching=False, prefix_number=False)

    results = await collect(engine.translate_lines(["a", "b", "c"]))

    assert [r.transform for r in results] == ["a", "b", ""]
    assert client.complete.await_count == 1


# ============================================================================
# Moderation
# ============================================================================


@pytest.mark.asyncio
async def test_moderation_flags_single_line(make_engine, make_response, mock_moderation_client):
    order: list[tuple[str, str]] = []
    moderate = mock_moderation_client.moderate.side_effect

    def record_moderation(text):
        order.append(("moderate", text))
        return moderate(text)

    def handler(request, on_delta=None):
        order.append(("complete", request.messages[-1].content))
        return make_response("\n".join(user_lines(request)))

    mock_moderation_client.moderate.side_effect = record_moderation
    client = make_client(handler)
    engine = make_engine(client, moderation_client=mock_moderation_client, use_moderator=True, batch_sizes=[5])
    lines = ["one", "two", "three", "a violent line", "five"]

    results = await collect(engine.translate_lines(lines))

    assert [r.index for r in results] == [0, 1, 2, 3, 4]
    assert [r.flagged for r in results] == [False, False, False, True, False]
    assert results[3].transform == "violence: 0.912"
    assert results[3].final_transform == "[Flagged][Moderator] a violent line -> violence: 0.912"
    assert engine.moderator_flags[3].reason == FlagReason.MODERATION.value

    # Whole batch checked first, then each line checked before its own request
    assert order[0] == ("moderate", "1. one\n\n2. two\n\n3. three\n\n4. a violent line\n\n5. five")
    completed = [text for kind, text in order if kind == "complete"]
    assert completed == ["1. one", "2. two", "3. three", "5. five"]
    for i, (kind, text) in enumerate(order):
        if kind == "complete":
            assert order[i - 1] == ("moderate", text)


@pytest.mark.asyncio
async def test_flagged_line_redacted_from_later_context(make_engine, mock_completion_client, mock_moderation_client):
    engine = make_engine(moderation_client=mock_moderation_client, use_moderator=True, batch_sizes=[1])

    await collect(engine.translate_lines(["calm", "violent words", "calm again"]))

    last: CompletionRequest = mock_completion_client.complete.await_args.args[0]
    context = " ".join(m.content for m in last.messages[1:-1])
    assert "violent" not in context
    assert "2. -" in context


@pytest.mark.asyncio
async def test_moderation_shrinks_before_single_mode(make_engine, mock_completion_client, mock_moderation_client):
    engine = make_engine(moderation_client=mock_moderation_client, use_moderator=True, batch_sizes=[2, 4])

    results = await collect(engine.translate_lines(["a", "b", "c", "violent d"]))

    assert engine.ladder.current == 2
    assert [r.flagged for r in results] == [False, False, False, True]


# ============================================================================
# Label drift
# ============================================================================


@pytest.mark.asyncio
async def test_label_mismatch_flags_line_without_retry(make_engine, make_response):
    def handler(request, on_delta=None):
        lines = user_lines(request)
        lines[2] = "7. hola"
        return make_response("\n".join(lines))

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[5])

    results = await collect(engine.translate_lines(["a", "b", "hello", "d", "e"]))

    assert client.complete.await_count == 1
    assert results[2].flagged is True
    assert results[2].transform == "hola"
    assert results[2].final_transform == "[Flagged][Model] hello -> hola"
    assert engine.moderator_flags[2].reason == FlagReason.LABEL_MISMATCH.value
    assert engine.moderator_flags[2].out_index == 7
    assert [r.flagged for i, r in enumerate(results) if i != 2] == [False] * 4


@pytest.mark.asyncio
async def test_markers_restored_without_prefix(make_engine, mock_completion_client):
    engine = make_engine(prefix_number=False)

    results = await collect(engine.translate_lines(["Hello\nWorld", "plain"]))

    request: CompletionRequest = mock_completion_client.complete.await_args.args[0]
    assert request.messages[-1].content == "Hello \\N World\n\nplain"
    assert results[0].transform == "Hello\nWorld"
    assert results[0].final_transform == "Hello\nWorld"


# ============================================================================
# Refusals
# ============================================================================


@pytest.mark.asyncio
async def test_multi_line_refusal_is_a_mismatch(make_engine, make_response):
    def handler(request, on_delta=None):
        lines = user_lines(request)
        if any("secret" in line for line in lines):
            return make_response("", refusal="I can't help with that.")
        return make_response("\n".join(lines))

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[3])

    results = await collect(engine.translate_lines(["a", "secret plan", "c"]))

    assert [len(batch) for batch in sent_batches(client)] == [3, 1, 1, 1]
    assert results[0].transform == "a"
    # Refusal text becomes the translation; it carries no label so it is flagged
    assert results[1].transform == "I can't help with that."
    assert results[1].flagged is True
    assert results[2].transform == "c"


@pytest.mark.asyncio
async def test_single_line_refusal_retried_with_fallback_model(make_engine, make_response):
    def handler(request, on_delta=None):
        if request.model == "gpt-4o-mini":
            return make_response("", refusal="No.")
        return make_response("\n".join(user_lines(request)), model=request.model)

    client = make_client(handler)
    engine = make_engine(client, batch_sizes=[1], fallback_model="gpt-4o")

    results = await collect(engine.translate_lines(["touchy"]))

    models = [call.args[0].model for call in client.complete.await_args_list]
    assert models == ["gpt-4o-mini", "gpt-4o"]
    assert results[0].transform == "touchy"
    assert engine.usage.tokens_wasted == 20


# ============================================================================
# Failures
# ============================================================================


@pytest.mark.asyncio
async def test_fatal_error_propagates(make_engine):
    client = make_client(LLMFatalError("Client error: 401", {"status": 401}))
    engine = make_engine(client)

    with pytest.raises(LLMFatalError):
        await collect(engine.translate_lines(["a", "b"]))

    assert client.complete.await_count == 1


@pytest.mark.asyncio
async def test_retry_exhausted_propagates(make_engine):
    client = make_client(LLMServerError("Service error: 503", {"status": 503}))
    engine = make_engine(client)

    with pytest.raises(RetryExhausted):
        await collect(engine.translate_lines(["a", "b"]))

    assert client.complete.await_count == 3


@pytest.mark.asyncio
async def test_transient_error_recovered(make_engine, make_response):
    client = make_client([LLMServerError("502"), make_response("1. a\n2. b")])
    engine = make_engine(client)

    results = await collect(engine.translate_lines(["a", "b"]))

    assert [r.transform for r in results] == ["a", "b"]


# ============================================================================
# Abort
# ============================================================================


@pytest.mark.asyncio
async def test_abort_between_batches(make_engine, mock_completion_client):
    engine = make_engine(batch_sizes=[2])
    results = []

    async for result in engine.translate_lines(["a", "b", "c", "d", "e", "f"]):
        results.append(result)
        engine.abort()

    assert len(results) == 2
    assert mock_completion_client.complete.await_count == 1


@pytest.mark.asyncio
async def test_abort_cancels_in_flight_request(make_engine, make_response):
    engine = None
    calls = 0

    async def handler(request, on_delta=None):
        nonlocal calls
        calls += 1
        if calls == 2:
            engine.abort()
            await asyncio.sleep(10)
        return make_response("\n".join(user_lines(request)))

    engine = make_engine(make_client(handler), batch_sizes=[2])

    results = await asyncio.wait_for(collect(engine.translate_lines(["a", "b", "c", "d"])), timeout=5)

    assert [r.transform for r in results] == ["a", "b"]
    assert len(engine.working_progress) == 2


@pytest.mark.asyncio
async def test_abort_before_first_pull_translates_nothing(make_engine, mock_completion_client):
    engine = make_engine()
    results = engine.translate_lines(["a", "b", "c"])

    engine.abort()

    assert await collect(results) == []
    assert mock_completion_client.complete.await_count == 0
    assert engine.working_progress == []


@pytest.mark.asyncio
async def test_abort_then_new_run_translates(make_engine, mock_completion_client):
    engine = make_engine()
    engine.abort()

    results = await collect(engine.translate_lines(["a", "b"]))

    assert [r.transform for r in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_abort_after_completion_emits_nothing(make_engine, make_response):
    engine = None

    def handler(request, on_delta=None):
        engine.abort()
        return make_response("\n".join(user_lines(request)))

    engine = make_engine(make_client(handler))

    assert await collect(engine.translate_lines(["a", "b"])) == []
    assert engine.working_progress == []


# ============================================================================
# Resume
# ============================================================================


@pytest.mark.asyncio
async def test_seed_resumes_at_offset(make_engine, mock_completion_client):
    lines = ["line 0", "bad line 1", "line 2", "line 3", "line 4", "line 5"]
    history = [
        WorkingEntry(index=i, source=f"{i + 1}. {lines[i]}", translation=f"{i + 1}. {lines[i]}")
        for i in range(3)
    ]
    engine = make_engine()
    engine.seed(history, {1: ModerationFlag(reason=FlagReason.MODERATION)}, offset=3)

    results = await collect(engine.translate_lines(lines))

    assert [r.index for r in results] == [3, 4, 5]
    assert not any(r.flagged for r in results)
    request: CompletionRequest = mock_completion_client.complete.await_args.args[0]
    assert request.messages[1].content == "1. line 0\n\n2. -\n\n3. line 2"
    assert request.messages[-1].content == "4. line 3\n\n5. line 4\n\n6. line 5"


@pytest.mark.asyncio
async def test_object_context_keeps_one_slot_per_redacted_entry(make_engine, make_response):
    client = make_client(lambda request, on_delta=None: make_response(json.dumps({"s3": "t3"})))
    engine = make_engine(client, structured_mode=StructuredMode.OBJECT)
    history = [WorkingEntry(index=i, source=f"s{i}", translation=f"t{i}") for i in range(3)]
    flags = {i: ModerationFlag(reason=FlagReason.MODERATION) for i in (0, 1)}
    engine.seed(history, flags)

    results = await collect(engine.translate_lines(["s0", "s1", "s2", "s3"]))

    assert [r.transform for r in results] == ["t3"]
    request: CompletionRequest = client.complete.await_args.args[0]
    context = [m for m in request.messages if m.role == MessageRole.ASSISTANT.value]
    assert json.loads(context[0].content) == {"-": "-", "- #2": "-", "s2": "t2"}


@pytest.mark.asyncio
async def test_seed_defaults_offset_to_history_length(make_engine):
    engine = make_engine()
    engine.seed([WorkingEntry(index=0, source="1. a", translation="1. a")])

    assert engine.offset == 1


@pytest.mark.asyncio
async def test_end_bound(make_engine):
    engine = make_engine()
    engine.end = 2

    results = await collect(engine.translate_lines(["a", "b", "c", "d"]))

    assert [r.index for r in results] == [0, 1]


# ============================================================================
# Streaming
# ============================================================================


@pytest.mark.asyncio
async def test_stream_deltas_forwarded(french, retry_policy, make_response):
    chunks: list[str] = []

    def handler(request, on_delta=None):
        assert request.stream is True
        text = "\n".join(user_lines(request))
        for token in text.split(" "):
            on_delta(token)
        return make_response(text)

    engine = TranslationEngine(
        french,
        TranslatorOptions(use_moderator=False, stream=True),
        make_client(handler),
        retry_policy=retry_policy,
        on_delta=chunks.append,
    )

    await collect(engine.translate_lines(["good morning"]))

    assert chunks == ["1.", "good", "morning"]


# ============================================================================
# Structured strategies
# ============================================================================


@pytest.mark.asyncio
async def test_array_strategy_round_trip(make_engine, array_echo_handler):
    client = make_client(array_echo_handler)
    engine = make_engine(client, structured_mode=StructuredMode.ARRAY)
    lines = [f"line {i}" for i in range(24)] + ["multi\nline"]

    results = await collect(engine.translate_lines(lines))

    assert engine.options.prefix_number is False
    assert engine.options.batch_sizes == [10, 20]
    assert [r.transform for r in results] == lines
    requests = [call.args[0] for call in client.complete.await_args_list]
    assert [r.schema_name for r in requests] == ["translation_array", "translation_array"]
    assert json.loads(requests[1].messages[-1].content)["inputs"][-1] == "multi \\N line"


@pytest.mark.asyncio
async def test_array_strategy_single_line_uses_delimited(make_engine, array_echo_handler):
    client = make_client(array_echo_handler)
    engine = make_engine(client, structured_mode=StructuredMode.ARRAY)

    results = await collect(engine.translate_lines(["only"]))

    assert client.complete.await_args.args[0].response_schema is None
    assert results[0].transform == "only"


@pytest.mark.asyncio
async def test_array_strategy_invalid_json_falls_back(make_engine, make_response):
    def handler(request, on_delta=None):
        if request.response_schema is not None:
            return make_response('{"outputs": ["trunc')
        return make_response("\n".join(user_lines(request)))

    client = make_client(handler)
    engine = make_engine(client, structured_mode=StructuredMode.ARRAY)

    results = await collect(engine.translate_lines(["a", "b", "c"]))

    assert [r.transform for r in results] == ["a", "b", "c"]
    assert client.complete.await_count == 2
    assert engine.usage.tokens_wasted == 20


@pytest.mark.asyncio
async def test_object_strategy(make_engine, make_response):
    def handler(request, on_delta=None):
        answer = {}
        for key, prop in request.response_schema["properties"].items():
            answer[key] = {k: k.upper() for k in prop["properties"]} if prop["type"] == "object" else key.upper()
        return make_response(json.dumps(answer))

    client = make_client(handler)
    engine = make_engine(client, structured_mode=StructuredMode.OBJECT)

    results = await collect(engine.translate_lines(["hello", "good\nmorning", "hello"]))

    request: CompletionRequest = client.complete.await_args.args[0]
    assert request.messages[-1].role == MessageRole.SYSTEM.value
    assert list(request.response_schema["properties"]) == ["hello", "nested_1", "hello #2"]
    assert [r.transform for r in results] == ["HELLO", "GOOD\nMORNING", "HELLO #2"]


@pytest.mark.asyncio
async def test_timestamp_strategy_allows_merges(make_engine, make_response):
    def handler(request, on_delta=None):
        inputs = json.loads(request.messages[-1].content)["inputs"]
        merged = {"start": inputs[-2]["start"], "end": inputs[-1]["end"], "text": "merged"}
        outputs = [{**item, "text": item["text"].upper()} for item in inputs[:-2]] + [merged]
        return make_response(json.dumps({"outputs": outputs}))

    client = make_client(handler)
    engine = make_engine(client, structured_mode=StructuredMode.TIMESTAMP)
    entries = [TimestampEntry(start=i, end=i + 1, text=f"cue {i}") for i in range(4)]

    results = await collect(engine.translate_entries(entries))

    assert engine.options.line_matching is False
    assert [r.transform for r in results] == ["CUE 0", "CUE 1", "merged"]
    assert [r.index for r in results] == [0, 1, 2]
    assert results[2].source == "cue 2\ncue 3"
    assert (results[2].start, results[2].end) == (2, 4)
    assert client.complete.await_count == 1


@pytest.mark.asyncio
async def test_timestamp_boundary_mismatch_shrinks(make_engine, make_response):
    def handler(request, on_delta=None):
        inputs = json.loads(request.messages[-1].content)["inputs"]
        if len(inputs) > 2:
            inputs = inputs[:-1]
        return make_response(json.dumps({"outputs": inputs}))

    client = make_client(handler)
    engine = make_engine(client, structured_mode=StructuredMode.TIMESTAMP, batch_sizes=[2, 4])
    entries = [TimestampEntry(start=i, end=i + 1, text=f"cue {i}") for i in range(4)]

    results = await collect(engine.translate_entries(entries))

    assert engine.ladder.current == 2
    assert [r.transform for r in results] == ["cue 0", "cue 1", "cue 2", "cue 3"]
    assert client.complete.await_count == 3


@pytest.mark.asyncio
async def test_timestamp_single_entry_empty_output_keeps_original(make_engine, make_response):
    client = make_client(lambda request, on_delta=None: make_response(json.dumps({"outputs": []})))
    engine = make_engine(client, structured_mode=StructuredMode.TIMESTAMP, batch_sizes=[1])

    results = await collect(engine.translate_entries([TimestampEntry(start=0, end=1.5, text="hi")]))

    assert results[0].transform == "hi"
    assert (results[0].start, results[0].end) == (0, 1.5)


@pytest.mark.asyncio
async def test_entry_point_must_match_strategy(make_engine):
    line_engine = make_engine()
    timed_engine = make_engine(structured_mode=StructuredMode.TIMESTAMP)

    with pytest.raises(ValueError):
        await collect(line_engine.translate_entries([TimestampEntry(start=0, end=1, text="x")]))
    with pytest.raises(ValueError):
        await collect(timed_engine.translate_lines(["x"]))
