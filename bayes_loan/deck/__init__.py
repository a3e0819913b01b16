"""Deck package: Markdown slides with executable Python chunks"""

from .options import ChunkOptions, DeckOptions
from .source import Deck, Slide, CodeChunk, MarkdownBlock, DeckSyntaxError, parse_deck, load_deck
from .executor import ChunkExecutor, ChunkResult, ChunkExecutionError
from .renderer import DeckRenderer, RenderResult, render_deck

__all__ = [
    "ChunkOptions",
    "DeckOptions",
    "Deck",
    "Slide",
    "CodeChunk",
    "MarkdownBlock",
    "DeckSyntaxError",
    "parse_deck",
    "load_deck",
    "ChunkExecutor",
    "ChunkResult",
    "ChunkExecutionError",
    "DeckRenderer",
    "RenderResult",
    "render_deck",
]
