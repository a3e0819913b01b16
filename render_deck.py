"""
Render the slide deck.

Executes every chunk of the deck source in order and writes Markdown
slides with their figures.
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from bayes_loan.config import DECK_CONFIG, LOGGING_CONFIG
from bayes_loan.deck import render_deck

logging.basicConfig(level=getattr(logging, LOGGING_CONFIG["level"]), format=LOGGING_CONFIG["format"])
logger = logging.getLogger(__name__)


def parse_param(text: str):
    """Parse key=value; the value is read as YAML so numbers and null work."""
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{text}'")
    key, value = text.split("=", 1)
    return key.strip(), yaml.safe_load(value)


def main():
    parser = argparse.ArgumentParser(description="Render the loan default slide deck")
    parser.add_argument("source", nargs="?", type=Path, default=DECK_CONFIG["source"],
                        help="Deck source (default: presentation/loan_default_talk.md)")
    parser.add_argument("--output", type=Path, default=DECK_CONFIG["output_dir"],
                        help="Output directory for slides and figures")
    parser.add_argument("--param", type=parse_param, action="append", default=[],
                        help="Override a deck parameter, e.g. --param draws=500")
    parser.add_argument("--cores", type=int, default=None,
                        help="Cores used by the sampler (overrides the deck's cores param)")
    parser.add_argument("--no-cache", action="store_true",
                        help="Execute cached chunks again")
    args = parser.parse_args()

    params = dict(args.param)
    if args.cores is not None:
        params["cores"] = args.cores

    result = render_deck(
        args.source,
        output_dir=args.output,
        params=params,
        use_cache=not args.no_cache,
    )

    print("=" * 60)
    print(f"Slides:   {result.output_path} ({result.slide_count} slides)")
    print(f"Chunks:   {result.chunks_executed} executed, {result.chunks_cached} cached, "
          f"{result.chunks_skipped} not evaluated")
    print(f"Figures:  {len(result.figure_paths)}")
    print("=" * 60)


if __name__ == "__main__":
    main()
