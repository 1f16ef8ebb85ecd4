import pytest

from conftest import FakeInference
from services.content_generator import (
    GenerationOptions,
    build_instruction,
    generate_text,
    max_tokens_for,
)
from services.errors import UpstreamError
from services.visualization import VISUALIZATION_SENTINEL, NoVisualization, Visualize


def test_build_instruction_applies_tone_length_and_exclusions():
    options = GenerationOptions(tone="friendly", word_count=200, negative_prompt="slang")
    instruction = build_instruction("a welcome note for new neighbours", options, NoVisualization())

    assert instruction.startswith("Generate content that is halal")
    assert "Generate a friendly response to: a welcome note for new neighbours" in instruction
    assert "(in approximately 200 words)" in instruction
    assert "(avoid: slang)" in instruction
    assert VISUALIZATION_SENTINEL not in instruction


def test_build_instruction_requests_visualization_block():
    instruction = build_instruction("Ramadan timetable", GenerationOptions(), Visualize(kind="timeline"))
    assert VISUALIZATION_SENTINEL in instruction
    assert '"date"' in instruction


def test_max_tokens_for_word_count():
    assert max_tokens_for(GenerationOptions()) == 1024
    assert max_tokens_for(GenerationOptions(word_count=100)) == 600
    assert max_tokens_for(GenerationOptions(word_count=1000)) == 2048


@pytest.mark.asyncio
async def test_generate_text_returns_prose_and_visualization():
    inference = FakeInference(
        {"generation": f'Three steps to start.\n{VISUALIZATION_SENTINEL}\n["Plan", "Save", "Give"]'}
    )

    generated = await generate_text(
        "How to start saving",
        GenerationOptions(word_count=50),
        inference=inference,
        advice=Visualize(kind="list", title="Steps"),
    )

    assert generated.text == "Three steps to start."
    assert generated.visualization_data == {"type": "list", "title": "Steps", "data": ["Plan", "Save", "Give"]}
    call = inference.calls[0]
    assert call["task"] == "generation"
    assert call["max_tokens"] == 300
    assert call["temperature"] == 0.7
    assert call["top_p"] == 0.95


@pytest.mark.asyncio
async def test_generate_text_rejects_empty_output():
    inference = FakeInference({"generation": f"  \n{VISUALIZATION_SENTINEL}\n[]"})

    with pytest.raises(UpstreamError):
        await generate_text("Anything", GenerationOptions(), inference=inference)
