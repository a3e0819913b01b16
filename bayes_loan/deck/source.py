"""
Deck Source Parser

Parses a Markdown deck with YAML front matter into slides made of
Markdown blocks and executable Python chunks.

Chunk syntax follows knitr:

    ```{python fit-model, cache=TRUE, fig.width=8}
    model.fit(train)
    ```
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Dict, Any, Union

import yaml
from pydantic import ValidationError

from .options import ChunkOptions, DeckOptions
from ..config import CHUNK_DEFAULTS

logger = logging.getLogger(__name__)

CHUNK_START = re.compile(r"^```\{python(?:[\s,]+(?P<options>.*?))?\}\s*$")
FENCE = re.compile(r"^```")
HEADING = re.compile(r"^(?P<hashes>#{1,2})\s+(?P<title>.+?)\s*$")
# Split on commas that are not inside quotes
OPTION_SPLIT = re.compile(r""",(?=(?:[^'"]|'[^']*'|"[^"]*")*$)""")


class DeckSyntaxError(ValueError):
    """Malformed deck source."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        super().__init__(f"line {line}: {message}" if line is not None else message)


@dataclass
class CodeChunk:
    code: str
    options: ChunkOptions
    line: int

    @property
    def label(self) -> str:
        return self.options.label


@dataclass
class MarkdownBlock:
    text: str


@dataclass
class Slide:
    title: str
    level: int = 2
    blocks: List[Union[MarkdownBlock, CodeChunk]] = field(default_factory=list)

    @property
    def chunks(self) -> List[CodeChunk]:
        return [b for b in self.blocks if isinstance(b, CodeChunk)]


@dataclass
class Deck:
    options: DeckOptions
    slides: List[Slide]
    path: Optional[Path] = None
    # Blocks before the first heading, shown on the title slide
    preamble: List[Union[MarkdownBlock, CodeChunk]] = field(default_factory=list)

    @property
    def chunks(self) -> List[CodeChunk]:
        leading = [b for b in self.preamble if isinstance(b, CodeChunk)]
        return leading + [c for s in self.slides for c in s.chunks]

    @property
    def slide_count(self) -> int:
        """Title slide plus one slide per heading."""
        return 1 + len(self.slides)


def _parse_value(raw: str) -> Any:
    value = raw.strip()
    if value in ("TRUE", "True", "true", "T"):
        return True
    if value in ("FALSE", "False", "false", "F"):
        return False
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def parse_chunk_options(header: Optional[str], line: int, index: int) -> Dict[str, Any]:
    """Parse 'label, key=value, ...' into a dict with normalised keys."""
    options: Dict[str, Any] = {}
    if header:
        for position, token in enumerate(OPTION_SPLIT.split(header)):
            token = token.strip()
            if not token:
                continue
            if "=" not in token:
                if position != 0:
                    raise DeckSyntaxError(f"chunk option without value: '{token}'", line)
                options["label"] = token
                continue
            key, value = token.split("=", 1)
            options[key.strip().replace(".", "_")] = _parse_value(value)
    options.setdefault("label", f"chunk-{index}")
    return options


def _split_front_matter(lines: List[str]):
    if not lines or lines[0].strip() != "---":
        return {}, lines, 0
    for i in range(1, len(lines)):
        if lines[i].strip() in ("---", "..."):
            try:
                meta = yaml.safe_load("\n".join(lines[1:i])) or {}
            except yaml.YAMLError as exc:
                raise DeckSyntaxError(f"invalid front matter: {exc}", 1) from exc
            if not isinstance(meta, dict):
                raise DeckSyntaxError("front matter must be a mapping", 1)
            return meta, lines[i + 1:], i + 1
    raise DeckSyntaxError("front matter is not closed", 1)


def parse_deck(text: str, path: Optional[Path] = None) -> Deck:
    """
    Parse deck source text.

    Args:
        text: Markdown source with optional YAML front matter
        path: Source path, kept for messages and relative resources

    Returns:
        Parsed Deck
    """
    meta, body, offset = _split_front_matter(text.splitlines())
    try:
        deck_options = DeckOptions(**meta)
    except ValidationError as exc:
        raise DeckSyntaxError(f"invalid front matter: {exc}", 1) from exc

    defaults = {**CHUNK_DEFAULTS, **deck_options.chunk_defaults}

    slides: List[Slide] = []
    preamble: List[Union[MarkdownBlock, CodeChunk]] = []
    current: Optional[Slide] = None
    buffer: List[str] = []
    labels = set()
    chunk_index = 0

    def flush_markdown():
        text_block = "\n".join(buffer).strip("\n")
        buffer.clear()
        if text_block.strip():
            _blocks().append(MarkdownBlock(text_block))

    def _blocks() -> List[Union[MarkdownBlock, CodeChunk]]:
        return current.blocks if current is not None else preamble

    i = 0
    in_plain_fence = False
    while i < len(body):
        line = body[i]
        line_no = offset + i + 1

        if in_plain_fence:
            buffer.append(line)
            if FENCE.match(line.strip()):
                in_plain_fence = False
            i += 1
            continue

        match = CHUNK_START.match(line.strip())
        if match:
            flush_markdown()
            chunk_index += 1
            raw = parse_chunk_options(match.group("options"), line_no, chunk_index)
            try:
                options = ChunkOptions(**{**defaults, **raw})
            except ValidationError as exc:
                raise DeckSyntaxError(f"invalid chunk options: {exc}", line_no) from exc
            if options.label in labels:
                raise DeckSyntaxError(f"duplicate chunk label '{options.label}'", line_no)
            labels.add(options.label)

            code_lines = []
            i += 1
            while i < len(body) and body[i].strip() != "```":
                code_lines.append(body[i])
                i += 1
            if i >= len(body):
                raise DeckSyntaxError(f"chunk '{options.label}' is not closed", line_no)

            _blocks().append(CodeChunk("\n".join(code_lines), options, line_no))
            i += 1
            continue

        if FENCE.match(line.strip()):
            in_plain_fence = True
            buffer.append(line)
            i += 1
            continue

        heading = HEADING.match(line)
        if heading:
            flush_markdown()
            current = Slide(title=heading.group("title"), level=len(heading.group("hashes")))
            slides.append(current)
        else:
            buffer.append(line)
        i += 1

    if in_plain_fence:
        raise DeckSyntaxError("code fence is not closed")
    flush_markdown()

    deck = Deck(options=deck_options, slides=slides, path=path, preamble=preamble)
    logger.info(f"Parsed deck '{deck_options.title}': {deck.slide_count} slides, {len(deck.chunks)} chunks")
    return deck


def load_deck(path: Union[str, Path]) -> Deck:
    """Read and parse a deck source file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Deck source not found at {path}")
    return parse_deck(path.read_text(encoding="utf-8"), path=path)
