# run_from_markdown.py

import asyncio
import logging
import sys
from pathlib import Path

from md2word.doc_generator import export_to_file
from md2word.logging_setup import setup_logging

# Default input and output locations
INPUT_MARKDOWN_FILE = 'data/document.md'
OUTPUT_DIR = 'output'

logger = logging.getLogger("run_from_markdown")


def main(argv=None) -> int:
    """
    Convert a local Markdown file into a Word document.

    Usage: python run_from_markdown.py [INPUT.md] [OUTPUT_DIR]
    """
    setup_logging()
    args = sys.argv[1:] if argv is None else argv
    input_path = Path(args[0] if args else INPUT_MARKDOWN_FILE)
    output_dir = Path(args[1] if len(args) > 1 else OUTPUT_DIR)

    logger.info("Reading Markdown from '%s'...", input_path)
    try:
        markdown = input_path.read_text(encoding='utf-8')
    except (FileNotFoundError, UnicodeDecodeError) as e:
        logger.error("Could not read the input file: %s", e)
        return 1

    output_path = asyncio.run(export_to_file(markdown, output_dir, filename=input_path.stem))
    logger.info("Saved document as '%s'.", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
