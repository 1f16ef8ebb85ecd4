import pytest

from conftest import FakeInference
from services.errors import UpstreamError
from services.visualization import (
    VISUALIZATION_SENTINEL,
    NoVisualization,
    Visualize,
    advise_visualization,
    parse_advice,
    split_visualization_block,
)


def test_parse_advice_from_json():
    advice = parse_advice('{"should_visualize": true, "visualization_type": "Timeline", "title": "Hijri months"}')
    assert advice == Visualize(kind="timeline", title="Hijri months")


def test_parse_advice_from_labeled_lines():
    advice = parse_advice("Visualize: Yes\nType: [table]\nTitle: [Zakat thresholds]")
    assert advice == Visualize(kind="table", title="Zakat thresholds")


def test_parse_advice_rejects_negative_or_unsupported_answers():
    assert parse_advice('{"should_visualize": false, "visualization_type": "chart"}') == NoVisualization()
    assert parse_advice("Visualize: Yes\nType: hologram") == NoVisualization()
    assert parse_advice("no idea") == NoVisualization()


@pytest.mark.asyncio
async def test_advise_visualization_degrades_to_no_visualization():
    failing = FakeInference({"visualization_advice": UpstreamError("timeout")})
    unavailable = FakeInference(available=False)

    assert await advise_visualization("Compare savings plans", inference=failing) == NoVisualization()
    assert await advise_visualization("Compare savings plans", inference=unavailable) == NoVisualization()
    assert unavailable.calls == []


def test_split_without_sentinel_returns_all_text():
    prose, data = split_visualization_block("  Just prose.  ", Visualize(kind="list"))
    assert prose == "Just prose."
    assert data is None


def test_split_extracts_fenced_json_block():
    raw = (
        "Savings grow steadily.\n"
        f"{VISUALIZATION_SENTINEL}\n"
        "```json\n"
        '{"chartType": "bar", "labels": ["Jan", "Feb"], "values": [10, 20]}\n'
        "```"
    )
    prose, data = split_visualization_block(raw, Visualize(kind="chart", title="Monthly savings"))

    assert prose == "Savings grow steadily."
    assert data == {
        "type": "chart",
        "title": "Monthly savings",
        "data": {"chartType": "bar", "labels": ["Jan", "Feb"], "values": [10, 20]},
    }


def test_split_discards_invalid_or_unrequested_blocks():
    raw = f"Prose.\n{VISUALIZATION_SENTINEL}\n{{broken"
    assert split_visualization_block(raw, Visualize(kind="table")) == ("Prose.", None)

    raw = f'Prose.\n{VISUALIZATION_SENTINEL}\n["a", "b"]'
    assert split_visualization_block(raw, NoVisualization()) == ("Prose.", None)

    raw = f"Prose.\n{VISUALIZATION_SENTINEL}\n[]"
    assert split_visualization_block(raw, Visualize(kind="list")) == ("Prose.", None)
