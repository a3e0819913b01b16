"""
Tests for the Deck Parser, Executor and Renderer
"""

import ast
import pytest
import matplotlib.pyplot as plt
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from bayes_loan.config import DECK_CONFIG, SAMPLER_CONFIG
from bayes_loan.deck import (
    parse_deck,
    load_deck,
    DeckSyntaxError,
    ChunkExecutor,
    ChunkExecutionError,
    DeckRenderer,
    render_deck,
)
from bayes_loan.deck.executor import touched_names

FENCE = "```"

SIMPLE_DECK = f"""---
title: "Test Deck"
author: "Analytics"
date: 2024-05-01
params:
  n: 3
---

## First slide

Some text.

{FENCE}{{python setup}}
x = params["n"] * 2
print("x is", x)
{FENCE}

## Second slide

{FENCE}{{python show, echo=FALSE}}
x + 1
{FENCE}

# Section

## Not run

{FENCE}{{python skipped, eval=FALSE}}
raise RuntimeError("never")
{FENCE}
"""


@pytest.fixture(autouse=True)
def agg_backend():
    plt.switch_backend("Agg")
    yield
    plt.close("all")


@pytest.fixture
def renderer(tmp_path):
    return DeckRenderer(
        output_dir=tmp_path / "out",
        cache_dir=tmp_path / "cache",
        show_progress=False,
    )


def deck_with(chunk_header: str, code: str, extra: str = "") -> str:
    return f"---\ntitle: T\n---\n\n## Slide\n\n{FENCE}{{python {chunk_header}}}\n{code}\n{FENCE}\n{extra}"


class TestParser:
    """Tests for deck source parsing."""

    def test_front_matter(self):
        deck = parse_deck(SIMPLE_DECK)

        assert deck.options.title == "Test Deck"
        assert deck.options.author == "Analytics"
        assert deck.options.date == "May 01, 2024"
        assert deck.options.params == {"n": 3}

    def test_today_date(self):
        deck = parse_deck("---\ntitle: T\ndate: today\n---\n\n## A\n")
        assert deck.options.date == datetime.now().strftime(DECK_CONFIG["date_format"])

    def test_slides_and_count(self):
        deck = parse_deck(SIMPLE_DECK)

        titles = [s.title for s in deck.slides]
        assert titles == ["First slide", "Second slide", "Section", "Not run"]
        assert deck.slides[2].level == 1
        assert deck.slide_count == 5

    def test_chunks_in_document_order(self):
        deck = parse_deck(SIMPLE_DECK)
        assert [c.label for c in deck.chunks] == ["setup", "show", "skipped"]

    def test_chunk_options(self):
        deck = parse_deck(deck_with("fig, cache=TRUE, fig.width=9, results='asis'", "pass"))
        options = deck.chunks[0].options

        assert options.label == "fig"
        assert options.cache is True
        assert options.fig_width == 9.0
        assert options.results == "asis"
        assert options.eval is True

    def test_unlabelled_chunks_get_labels(self):
        text = deck_with("", "a = 1", extra=f"\n{FENCE}{{python}}\nb = 2\n{FENCE}\n")
        deck = parse_deck(text)
        assert [c.label for c in deck.chunks] == ["chunk-1", "chunk-2"]

    def test_chunk_defaults_from_front_matter(self):
        text = "---\ntitle: T\nchunk_defaults:\n  echo: false\n  fig.height: 3\n---\n\n## A\n\n" \
               f"{FENCE}{{python a}}\npass\n{FENCE}\n"
        options = parse_deck(text).chunks[0].options

        assert options.echo is False
        assert options.fig_height == 3.0

    def test_unknown_option_rejected(self):
        with pytest.raises(DeckSyntaxError) as excinfo:
            parse_deck(deck_with("a, colour=red", "pass"))
        assert excinfo.value.line == 7

    def test_invalid_results_rejected(self):
        with pytest.raises(DeckSyntaxError):
            parse_deck(deck_with("a, results='loud'", "pass"))

    def test_duplicate_label_rejected(self):
        text = deck_with("a", "pass", extra=f"\n{FENCE}{{python a}}\npass\n{FENCE}\n")
        with pytest.raises(DeckSyntaxError, match="duplicate"):
            parse_deck(text)

    def test_unclosed_chunk_rejected(self):
        with pytest.raises(DeckSyntaxError, match="not closed"):
            parse_deck(f"## A\n\n{FENCE}{{python a}}\nx = 1\n")

    def test_leading_text_on_title_slide(self):
        """Text before the first heading does not add a slide."""
        deck = parse_deck(
            "---\ntitle: T\n---\n\nIntro paragraph before any heading.\n\n"
            f"{FENCE}{{python intro}}\nhello = 1\n{FENCE}\n\n## A\n\nbody\n"
        )

        assert deck.slide_count == 2
        assert [s.title for s in deck.slides] == ["A"]
        assert deck.preamble[0].text == "Intro paragraph before any heading."
        assert [c.label for c in deck.chunks] == ["intro"]

    def test_headings_inside_plain_fences_ignored(self):
        text = f"## A\n\n{FENCE}bash\n# a shell comment\n## another\n{FENCE}\n"
        deck = parse_deck(text)
        assert deck.slide_count == 2

    def test_no_front_matter(self):
        deck = parse_deck("## Only\n\ntext\n")
        assert deck.options.title == "Untitled"
        assert deck.slide_count == 2

    def test_bad_front_matter(self):
        with pytest.raises(DeckSyntaxError):
            parse_deck("---\n- a\n- b\n---\n")

    def test_shipped_deck(self):
        """The talk parses; slide count is the title plus one per heading."""
        deck = load_deck(DECK_CONFIG["source"])
        text = DECK_CONFIG["source"].read_text(encoding="utf-8")
        headings = [line for line in text.splitlines() if line.startswith("## ")]

        assert deck.slide_count == 1 + len(headings)
        install = next(c for c in deck.chunks if c.label == "install")
        assert install.options.eval is False
        assert next(c for c in deck.chunks if c.label == "fit-full").options.cache is True

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_deck(tmp_path / "missing.md")


class TestExecutor:
    """Tests for chunk execution."""

    def test_shared_namespace_and_stdout(self, tmp_path):
        deck = parse_deck(SIMPLE_DECK)
        executor = ChunkExecutor(params={"n": 3}, cache_dir=tmp_path)

        first = executor.run(deck.chunks[0])
        second = executor.run(deck.chunks[1])

        assert first.stdout.strip() == "x is 6"
        assert second.value == "7"
        assert executor.namespace["x"] == 6

    def test_eval_false_not_executed(self, tmp_path):
        deck = parse_deck(SIMPLE_DECK)
        result = ChunkExecutor(cache_dir=tmp_path).run(deck.chunks[2])

        assert result.executed is False
        assert result.text == ""

    def test_error_raises_by_default(self, tmp_path):
        deck = parse_deck(deck_with("boom", "1 / 0"))

        with pytest.raises(ChunkExecutionError) as excinfo:
            ChunkExecutor(cache_dir=tmp_path).run(deck.chunks[0])

        assert excinfo.value.label == "boom"
        assert isinstance(excinfo.value.original, ZeroDivisionError)

    def test_syntax_error_in_chunk(self, tmp_path):
        deck = parse_deck(deck_with("bad", "def ("))
        with pytest.raises(ChunkExecutionError):
            ChunkExecutor(cache_dir=tmp_path).run(deck.chunks[0])

    def test_error_true_continues(self, tmp_path):
        deck = parse_deck(deck_with("boom, error=TRUE", "print('before')\n1 / 0"))
        result = ChunkExecutor(cache_dir=tmp_path).run(deck.chunks[0])

        assert "ZeroDivisionError" in result.error
        assert "before" in result.stdout

    def test_figures_captured(self, tmp_path):
        code = "import matplotlib.pyplot as plt\nfig, ax = plt.subplots()\nax.plot([1, 2, 3])\nfig"
        deck = parse_deck(deck_with("plot", code))

        result = ChunkExecutor(cache_dir=tmp_path).run(deck.chunks[0])

        assert len(result.figures) == 1
        assert result.figures[0].startswith(b"\x89PNG")
        assert result.value is None
        assert plt.get_fignums() == []

    def test_dataframe_value(self, tmp_path):
        code = "import pandas as pd\npd.DataFrame({'a': [1, 2]})"
        result = ChunkExecutor(cache_dir=tmp_path).run(parse_deck(deck_with("df", code)).chunks[0])
        assert "a" in result.value
        assert "2" in result.value

    def test_cache_restores_namespace(self, tmp_path):
        code = "import math\ncounter = params.get('start', 0) + 41\nprint(counter)"
        chunk = parse_deck(deck_with("cached, cache=TRUE", code)).chunks[0]

        first = ChunkExecutor(cache_dir=tmp_path).run(chunk)
        executor = ChunkExecutor(cache_dir=tmp_path)
        second = executor.run(chunk)

        assert first.executed is True
        assert second.cached is True
        assert second.executed is False
        assert second.stdout.strip() == "41"
        assert executor.namespace["counter"] == 41
        assert executor.namespace["math"].sqrt(4) == 2

    def test_cache_restores_in_place_changes(self, tmp_path):
        """Objects created upstream and mutated by a cached chunk are restored."""
        make = parse_deck(deck_with("make", "items = []\nframe = {}")).chunks[0]
        grow = parse_deck(deck_with("grow, cache=TRUE", "items.append(1)\nframe['x'] = 2")).chunks[0]

        first = ChunkExecutor(cache_dir=tmp_path)
        first.run(make)
        first.run(grow)

        executor = ChunkExecutor(cache_dir=tmp_path)
        executor.run(make)
        result = executor.run(grow)

        assert result.cached is True
        assert executor.namespace["items"] == [1]
        assert executor.namespace["frame"] == {"x": 2}

    def test_touched_names(self):
        tree = ast.parse(
            "a.append(1)\nb[0] = 2\nc.x = 3\nd += 1\nprint(e)\nf = g.h\ndel k['z']"
        )
        assert touched_names(tree) == {"a", "b", "c", "d", "e", "k"}

    def test_cache_invalidated_by_code_change(self, tmp_path):
        first = parse_deck(deck_with("c, cache=TRUE", "y = 1")).chunks[0]
        changed = parse_deck(deck_with("c, cache=TRUE", "y = 2")).chunks[0]

        ChunkExecutor(cache_dir=tmp_path).run(first)
        result = ChunkExecutor(cache_dir=tmp_path).run(changed)

        assert result.executed is True
        assert len(list(tmp_path.glob("c-*.joblib"))) == 1

    def test_cache_invalidated_by_params(self, tmp_path):
        chunk = parse_deck(deck_with("c, cache=TRUE", "y = params['n']")).chunks[0]

        ChunkExecutor(params={"n": 1}, cache_dir=tmp_path).run(chunk)
        result = ChunkExecutor(params={"n": 2}, cache_dir=tmp_path).run(chunk)

        assert result.executed is True

    def test_unpicklable_result_not_cached(self, tmp_path):
        chunk = parse_deck(deck_with("gen, cache=TRUE", "g = (i for i in range(3))")).chunks[0]

        result = ChunkExecutor(cache_dir=tmp_path).run(chunk)

        assert result.executed is True
        assert list(tmp_path.glob("gen-*.joblib")) == []

    def test_use_cache_false(self, tmp_path):
        chunk = parse_deck(deck_with("c, cache=TRUE", "z = 3")).chunks[0]

        ChunkExecutor(cache_dir=tmp_path).run(chunk)
        result = ChunkExecutor(cache_dir=tmp_path, use_cache=False).run(chunk)

        assert result.executed is True


class TestRenderer:
    """Tests for Markdown rendering."""

    def test_render_simple_deck(self, renderer):
        result = renderer.render(parse_deck(SIMPLE_DECK))
        slides = result.output_path.read_text(encoding="utf-8")

        assert result.slide_count == 5
        assert slides.count("\n---\n") == 4
        assert slides.startswith("# Test Deck")
        assert "### Analytics" in slides
        assert "x is 6" in slides
        assert "```python\nx = params" in slides
        # echo=FALSE hides the code but not the value
        assert "x + 1" not in slides
        assert "7" in slides
        # eval=FALSE shows the code
        assert 'raise RuntimeError("never")' in slides
        assert result.chunks_executed == 2
        assert result.chunks_skipped == 1

    def test_leading_text_rendered_on_title_slide(self, renderer):
        text = "---\ntitle: T\n---\n\nIntro paragraph.\n\n## A\n\nbody\n"
        result = renderer.render(parse_deck(text))
        slides = result.output_path.read_text(encoding="utf-8")

        assert result.slide_count == 2
        assert slides.count("\n---\n") == 1
        title_slide = slides.split("\n---\n")[0]
        assert "# T" in title_slide
        assert "Intro paragraph." in title_slide

    def test_cached_chunk_mutation_survives_second_render(self, tmp_path):
        text = (
            "---\ntitle: T\n---\n\n## A\n\n"
            f"{FENCE}{{python make}}\nitems = []\n{FENCE}\n\n"
            f"{FENCE}{{python grow, cache=TRUE}}\nitems.append(1)\n{FENCE}\n\n"
            f"{FENCE}{{python show}}\nprint('items:', items)\n{FENCE}\n"
        )
        kwargs = dict(output_dir=tmp_path / "out", cache_dir=tmp_path / "cache", show_progress=False)

        render_deck(parse_deck(text), **kwargs)
        second = render_deck(parse_deck(text), **kwargs)

        assert second.chunks_cached == 1
        assert "items: [1]" in second.output_path.read_text(encoding="utf-8")

    def test_chunks_execute_in_order(self, renderer):
        text = (
            "---\ntitle: T\n---\n\n## A\n\n"
            f"{FENCE}{{python one}}\norder = ['one']\n{FENCE}\n\n## B\n\n"
            f"{FENCE}{{python two}}\norder.append('two')\nprint(order)\n{FENCE}\n"
        )
        result = renderer.render(parse_deck(text))
        assert "['one', 'two']" in result.output_path.read_text(encoding="utf-8")

    def test_param_overrides(self, tmp_path):
        renderer = DeckRenderer(output_dir=tmp_path, cache_dir=tmp_path / "c",
                                params={"n": 10}, show_progress=False)
        result = renderer.render(parse_deck(SIMPLE_DECK))
        assert "x is 20" in result.output_path.read_text(encoding="utf-8")

    def test_results_options(self, renderer):
        text = (
            "---\ntitle: T\n---\n\n## A\n\n"
            f"{FENCE}{{python asis, results='asis', echo=FALSE}}\nprint('- bullet')\n{FENCE}\n\n"
            f"{FENCE}{{python hidden, results='hide', echo=FALSE}}\nprint('secret')\n{FENCE}\n\n"
            f"{FENCE}{{python excluded, include=FALSE}}\nprint('gone')\n{FENCE}\n"
        )
        slides = renderer.render(parse_deck(text)).output_path.read_text(encoding="utf-8")

        assert "\n- bullet" in slides
        assert "```text\n- bullet" not in slides
        assert "secret" not in slides
        assert "gone" not in slides

    def test_figures_written(self, renderer):
        code = "import matplotlib.pyplot as plt\nplt.plot([1, 2])\nplt.plot([2, 1])"
        result = renderer.render(parse_deck(deck_with("lines", code)))
        slides = result.output_path.read_text(encoding="utf-8")

        assert len(result.figure_paths) == 1
        assert result.figure_paths[0].exists()
        assert "![lines](figures/lines-1.png)" in slides

    def test_error_aborts_render(self, renderer):
        with pytest.raises(ChunkExecutionError):
            renderer.render(parse_deck(deck_with("boom", "raise KeyError('x')")))

    def test_second_render_uses_cache(self, tmp_path):
        text = deck_with("slow, cache=TRUE", "value = sum(range(10))\nvalue")
        kwargs = dict(output_dir=tmp_path / "out", cache_dir=tmp_path / "cache", show_progress=False)

        first = render_deck(parse_deck(text), **kwargs)
        second = render_deck(parse_deck(text), **kwargs)

        assert first.chunks_executed == 1
        assert second.chunks_cached == 1
        assert "45" in second.output_path.read_text(encoding="utf-8")


class TestShippedDeck:
    """End-to-end render of the talk with a short sampler run."""

    def test_cores_default_from_config(self, tmp_path):
        """Without a cores override the sampler uses SAMPLER_CONFIG."""
        deck = load_deck(DECK_CONFIG["source"])
        chunk = next(c for c in deck.chunks if c.label == "sampler")

        executor = ChunkExecutor(params=deck.options.params, cache_dir=tmp_path)
        executor.run(chunk)
        assert deck.options.params["cores"] is None
        assert executor.namespace["sampler"]["cores"] == SAMPLER_CONFIG["cores"]

        override = ChunkExecutor(params={**deck.options.params, "cores": 2}, cache_dir=tmp_path)
        override.run(chunk)
        assert override.namespace["sampler"]["cores"] == 2

    def test_render_talk(self, tmp_path):
        params = {"sample_size": 400, "draws": 100, "tune": 100, "chains": 2, "cores": 1}
        result = render_deck(
            DECK_CONFIG["source"],
            output_dir=tmp_path / "out",
            cache_dir=tmp_path / "cache",
            params=params,
            show_progress=False,
        )
        deck = load_deck(DECK_CONFIG["source"])

        assert result.slide_count == deck.slide_count
        assert result.chunks_skipped == 1
        assert result.chunks_executed == len(deck.chunks) - 1
        assert len(result.figure_paths) >= 5
        slides = result.output_path.read_text(encoding="utf-8")
        assert "Leave-one-out comparison" in slides
        assert "elpd_loo" in slides
