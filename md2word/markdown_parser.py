# md2word/markdown_parser.py

import logging
import re
from typing import List, Optional

from .schemas import ContentBlock, ContentType, ParsedTable, Section

logger = logging.getLogger(__name__)

DEFAULT_SECTION_TITLE = "Introduction"

_HEADING_RE = re.compile(r'^(#+)')
_LIST_MARKER_RE = re.compile(r'^([-*]|\d+\.)\s')
_SEPARATOR_ROW_RE = re.compile(r'^[-:\s]+$')
_HR_LINES = {'---', '***', '___'}


def unescape_latex_markers(text: str) -> str:
    """
    Restore math markers that an upstream editor escaped, so that math survives export.

    \\$ -> $, \\$$ -> $$, \\_ -> _, \\{ -> {, \\} -> }, \\\\frac -> \\frac
    """
    text = re.sub(r'\\(\$\$?)', r'\1', text)
    text = re.sub(r'\\([_{}])', r'\1', text)
    text = re.sub(r'\\\\([a-zA-Z]+)', r'\\\1', text)
    return text


def _extract_cells(row: str) -> List[str]:
    trimmed = row.strip()
    parts = trimmed.split('|')
    if len(parts) > 1 and trimmed.startswith('|') and trimmed.endswith('|'):
        parts = parts[1:-1]
    return [cell.strip() for cell in parts]


def parse_table(rows: List[str]) -> Optional[ParsedTable]:
    """
    Turn pipe-delimited lines into header cells and data rows.

    Separator rows (only '-', ':' and whitespace once pipes are removed) are dropped;
    rows with no text at all are kept as blank data rows.
    Returns None when no content row is left.
    """
    content_rows = [row for row in rows if not _SEPARATOR_ROW_RE.match(row.replace('|', '').strip())]
    if not content_rows:
        return None

    headers = _extract_cells(content_rows[0])
    data = [_extract_cells(row) for row in content_rows[1:]]
    return ParsedTable(headers=headers, rows=data)


class MarkdownStructureParser:
    """
    Line-oriented scanner that splits Markdown into sections of typed blocks.

    At most one multi-line mode is open at a time: 'code', 'math', 'table' or 'blockquote'.
    Opening a mode flushes whatever mode was open before it.
    """

    def __init__(self, markdown: str):
        self.lines = markdown.replace('\r\n', '\n').split('\n')
        self.sections: List[Section] = []
        self.current = Section(title=DEFAULT_SECTION_TITLE, level=1)
        self.mode: Optional[str] = None
        self.buffer: List[str] = []
        self.code_language = ''

    def parse(self) -> List[Section]:
        for index, line in enumerate(self.lines):
            self._consume(line, self._peek(index + 1))
        self._close_mode()
        self._flush_section()
        return self.sections

    def _peek(self, index: int) -> Optional[str]:
        if index < len(self.lines):
            return self.lines[index].strip()
        return None

    def _consume(self, line: str, next_line: Optional[str]):
        stripped = line.strip()

        if self.mode == 'code':
            if stripped.startswith('```'):
                self._close_mode()
            else:
                self.buffer.append(line)
            return

        if self.mode == 'math':
            if stripped == '$$':
                self._close_mode()
            else:
                self.buffer.append(line)
            return

        if stripped == '$$':
            self._open_mode('math')
            return

        if stripped.startswith('```'):
            self._open_mode('code')
            self.code_language = stripped.lstrip('`').strip()
            return

        if stripped.startswith('#'):
            self._close_mode()
            self._start_section(stripped)
            return

        if '|' in stripped:
            if self.mode != 'table':
                if next_line and '|' in next_line and '-' in next_line:
                    self._open_mode('table')
                else:
                    self._close_mode()
                    self._add_block(ContentType.PARAGRAPH, stripped)
                    return
            self.buffer.append(stripped)
            if not next_line or '|' not in next_line:
                self._close_mode()
            return

        if stripped.startswith('>'):
            if self.mode != 'blockquote':
                self._open_mode('blockquote')
            text = stripped[1:]
            if text.startswith(' '):
                text = text[1:]
            self.buffer.append(text)
            return

        # Any other line ends an open table or blockquote
        self._close_mode()

        if not stripped:
            return

        if _LIST_MARKER_RE.match(stripped):
            self._add_block(ContentType.LIST_ITEM, _LIST_MARKER_RE.sub('', stripped, count=1).strip())
        elif stripped in _HR_LINES:
            self._add_block(ContentType.HR, '')
        else:
            self._add_block(ContentType.PARAGRAPH, stripped)

    def _start_section(self, heading_line: str):
        self._flush_section()
        match = _HEADING_RE.match(heading_line)
        level = len(match.group(1)) if match else 1
        title = heading_line.lstrip('#').strip()
        self.current = Section(title=title, level=level)

    def _flush_section(self):
        if self.current.blocks:
            self.sections.append(self.current)

    def _add_block(self, block_type: ContentType, content: str, **extra):
        self.current.blocks.append(ContentBlock(type=block_type, content=content, **extra))

    def _open_mode(self, mode: str):
        self._close_mode()
        self.mode = mode
        self.buffer = []

    def _close_mode(self):
        mode, buffer = self.mode, self.buffer
        self.mode, self.buffer = None, []
        if mode is None:
            return

        if mode == 'code':
            if buffer:
                self._add_block(ContentType.CODE_BLOCK, '\n'.join(buffer), language=self.code_language)
            self.code_language = ''
        elif mode == 'math':
            if buffer:
                self._add_block(ContentType.CODE_BLOCK, '\n'.join(buffer), language='math')
        elif mode == 'table':
            parsed = parse_table(buffer)
            if parsed is not None:
                self._add_block(ContentType.TABLE, '', table_data=parsed)
            else:
                logger.debug("Table-like block without content rows, keeping %d line(s) as text.", len(buffer))
                for row in buffer:
                    self._add_block(ContentType.PARAGRAPH, row)
        elif mode == 'blockquote':
            self._add_block(ContentType.BLOCKQUOTE, '\n'.join(buffer))


def parse_markdown_to_sections(markdown: str) -> List[Section]:
    """
    Parse Markdown text into an ordered list of sections.

    Args:
        markdown (str): The raw Markdown source.

    Returns:
        List[Section]: Sections in document order. Content before the first heading
        lands in an implicit "Introduction" section, which is dropped when empty.

    Raises:
        TypeError: If markdown is not a string.
    """
    if not isinstance(markdown, str):
        raise TypeError(f"Markdown input must be a string, got {type(markdown).__name__}")

    sections = MarkdownStructureParser(markdown).parse()
    logger.debug("Parsed %d section(s) with %d block(s).", len(sections), sum(len(s.blocks) for s in sections))
    return sections
