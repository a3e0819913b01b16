"""
Deck Renderer

Executes a parsed deck chunk by chunk and writes a Markdown slide deck
(slides separated by "---") plus a figures directory.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import matplotlib.pyplot as plt
from tqdm import tqdm

from .executor import ChunkExecutor, ChunkResult
from .source import Deck, CodeChunk, MarkdownBlock, Slide, load_deck
from ..config import DECK_CONFIG

logger = logging.getLogger(__name__)

SLIDE_SEPARATOR = "\n\n---\n\n"


@dataclass
class RenderResult:
    output_path: Path
    slide_count: int
    chunks_executed: int = 0
    chunks_cached: int = 0
    chunks_skipped: int = 0
    figure_paths: List[Path] = field(default_factory=list)


class DeckRenderer:
    """
    Renders a Deck to Markdown.

    Chunks run in document order. Failing chunks abort the render unless
    they set error=TRUE.
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        cache_dir: Optional[Path] = None,
        use_cache: bool = True,
        params: Optional[Dict[str, Any]] = None,
        show_progress: bool = True
    ):
        self.output_dir = Path(output_dir) if output_dir else DECK_CONFIG["output_dir"]
        self.cache_dir = Path(cache_dir) if cache_dir else DECK_CONFIG["cache_dir"]
        self.use_cache = use_cache
        self.param_overrides = dict(params or {})
        self.show_progress = show_progress

    def render(self, deck: Deck) -> RenderResult:
        """Execute all chunks and write the slides."""
        plt.switch_backend("Agg")

        params = {**deck.options.params, **self.param_overrides}
        executor = ChunkExecutor(params=params, cache_dir=self.cache_dir, use_cache=self.use_cache)

        figures_dir = self.output_dir / DECK_CONFIG["figures_subdir"]
        figures_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / DECK_CONFIG["output_name"]
        result = RenderResult(output_path=output_path, slide_count=deck.slide_count)

        logger.info(f"Rendering '{deck.options.title}' with params {params}")
        with tqdm(total=len(deck.chunks), desc="Rendering", unit="chunk",
                  disable=not self.show_progress) as progress:
            title = [self._title_slide(deck)]
            leading = self._render_blocks(deck.preamble, executor, figures_dir, result, progress)
            if leading:
                title.append(leading)
            sections = ["\n\n".join(title)]
            for slide in deck.slides:
                sections.append(self._render_slide(slide, executor, figures_dir, result, progress))

        output_path.write_text(SLIDE_SEPARATOR.join(sections) + "\n", encoding="utf-8")
        logger.info(
            f"Wrote {result.slide_count} slides to {output_path} "
            f"({result.chunks_executed} executed, {result.chunks_cached} cached, "
            f"{result.chunks_skipped} skipped)"
        )
        return result

    @staticmethod
    def _title_slide(deck: Deck) -> str:
        lines = [f"# {deck.options.title}"]
        if deck.options.author:
            lines.append(f"### {deck.options.author}")
        if deck.options.date:
            lines.append(f"### {deck.options.date}")
        return "\n\n".join(lines)

    def _render_slide(
        self,
        slide: Slide,
        executor: ChunkExecutor,
        figures_dir: Path,
        result: RenderResult,
        progress: tqdm
    ) -> str:
        parts = [f"{'#' * slide.level} {slide.title}"]
        body = self._render_blocks(slide.blocks, executor, figures_dir, result, progress)
        if body:
            parts.append(body)
        return "\n\n".join(parts)

    def _render_blocks(
        self,
        blocks: List[Union[MarkdownBlock, CodeChunk]],
        executor: ChunkExecutor,
        figures_dir: Path,
        result: RenderResult,
        progress: tqdm
    ) -> str:
        parts = []
        for block in blocks:
            if isinstance(block, MarkdownBlock):
                parts.append(block.text)
                continue

            chunk_result = executor.run(block)
            progress.update(1)
            if chunk_result.cached:
                result.chunks_cached += 1
            elif chunk_result.executed:
                result.chunks_executed += 1
            else:
                result.chunks_skipped += 1

            rendered = self._render_chunk(block, chunk_result, figures_dir, result)
            if rendered:
                parts.append(rendered)

        return "\n\n".join(parts)

    def _render_chunk(
        self,
        chunk: CodeChunk,
        chunk_result: ChunkResult,
        figures_dir: Path,
        result: RenderResult
    ) -> str:
        options = chunk.options
        if not options.include:
            return ""

        parts = []
        if options.echo:
            parts.append(f"```python\n{chunk.code}\n```")

        text = chunk_result.text
        if text and options.results != "hide":
            parts.append(text if options.results == "asis" else f"```text\n{text}\n```")

        if chunk_result.error:
            parts.append(f"```text\n{chunk_result.error}\n```")

        for i, png in enumerate(chunk_result.figures, start=1):
            figure_path = figures_dir / f"{chunk.label}-{i}.png"
            figure_path.write_bytes(png)
            result.figure_paths.append(figure_path)
            parts.append(f"![{chunk.label}]({figures_dir.name}/{figure_path.name})")

        return "\n\n".join(parts)


def render_deck(
    source: Union[str, Path, Deck, None] = None,
    output_dir: Optional[Path] = None,
    params: Optional[Dict[str, Any]] = None,
    use_cache: bool = True,
    cache_dir: Optional[Path] = None,
    show_progress: bool = True
) -> RenderResult:
    """
    Parse (if needed) and render a deck.

    Args:
        source: Deck source path or parsed Deck. Defaults to the shipped talk.
        output_dir: Where slides and figures are written
        params: Overrides for the deck's front-matter params
        use_cache: Honour cache=TRUE chunks
        cache_dir: Chunk cache location

    Returns:
        RenderResult
    """
    deck = source if isinstance(source, Deck) else load_deck(source or DECK_CONFIG["source"])
    renderer = DeckRenderer(
        output_dir=output_dir,
        cache_dir=cache_dir,
        use_cache=use_cache,
        params=params,
        show_progress=show_progress,
    )
    return renderer.render(deck)
