# md2word/doc_generator.py
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, Tuple

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.image.exceptions import InvalidImageStreamError, UnexpectedEndOfFileError, UnrecognizedImageError
from docx.image.image import Image as DocxImage
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor

from .config import (DIAGRAM_FALLBACK_SIZE_PX, DIAGRAM_MAX_WIDTH_PX, INLINE_MATH_HEIGHT_PX, MATH_IMAGE_MAX_WIDTH_PX,
                     MATH_IMAGE_SCALE, settings)
from .latex_converter import latex_to_omml, strip_xml_invalid_chars
from .markdown_parser import parse_markdown_to_sections, unescape_latex_markers
from .rasterizers import (CodecogsMathRasterizer, DiagramCache, DiagramRenderer, MathRasterizer,
                          MermaidInkRenderer)
from .schemas import ContentBlock, ContentType, ExportOptions, ParsedTable

logger = logging.getLogger(__name__)

DIAGRAM_FAILED_LABEL = "[Diagram rendering failed]"
MATH_LANGUAGES = {'math', 'latex'}

# Heading level -> (size in pt, color, italic)
HEADING_STYLES = {
    1: (24, '0F172A', False),
    2: (20, '0F172A', False),
    3: (16, '1E293B', False),
    4: (14, '334155', False),
    5: (12, '334155', False),
    6: (11, '475569', True),
}

CODE_FONT = 'Courier New'
CODE_SHADING = 'F5F5F5'
CODE_BORDER = 'CCCCCC'
BLOCKQUOTE_SHADING = 'F0F0F0'
HR_BORDER = 'CCCCCC'
TABLE_HEADER_SHADING = 'F1F5F9'
TABLE_HEADER_BORDER = '94A3B8'
TABLE_CELL_BORDER = 'CBD5E1'

# Raised by docx.image for blobs it cannot size or embed
IMAGE_ERRORS = (UnrecognizedImageError, UnexpectedEndOfFileError, InvalidImageStreamError)

_INLINE_MATH_RE = re.compile(r'(\$[^$]+\$)')
_BOLD_RE = re.compile(r'(\*\*[^*]+\*\*)')
_ITALIC_RE = re.compile(r'(\*[^*]+\*)')

# Children that must come after w:pBdr / w:shd inside w:pPr, in schema order
_PPR_AFTER_SHD = ('w:tabs', 'w:suppressAutoHyphens', 'w:kinsoku', 'w:wordWrap', 'w:overflowPunct',
                  'w:topLinePunct', 'w:autoSpaceDE', 'w:autoSpaceDN', 'w:bidi', 'w:adjustRightInd',
                  'w:snapToGrid', 'w:spacing', 'w:ind', 'w:contextualSpacing', 'w:mirrorIndents',
                  'w:suppressOverlap', 'w:jc', 'w:textDirection', 'w:textAlignment', 'w:textboxTightWrap',
                  'w:outlineLvl', 'w:divId', 'w:cnfStyle', 'w:rPr', 'w:sectPr', 'w:pPrChange')
_PPR_AFTER_PBDR = ('w:shd',) + _PPR_AFTER_SHD
# Same for w:tcBorders / w:shd inside w:tcPr
_TCPR_AFTER_SHD = ('w:noWrap', 'w:tcMar', 'w:textDirection', 'w:tcFitText', 'w:vAlign', 'w:hideMark')
_TCPR_AFTER_BORDERS = ('w:shd',) + _TCPR_AFTER_SHD


class DocumentPackagingError(RuntimeError):
    """Raised when the assembled document cannot be serialized to .docx."""


@dataclass
class ExportContext:
    options: ExportOptions
    diagram_renderer: DiagramRenderer
    math_rasterizer: MathRasterizer
    cache: DiagramCache = field(default_factory=DiagramCache)


# ==============================================================================
# SECTION 1: LOW-LEVEL OOXML HELPERS
# ==============================================================================
def _px(pixels: float):
    """Screen pixels (96 dpi) to a python-docx length."""
    return Pt(pixels * 0.75)


def image_size_px(blob: bytes) -> Tuple[int, int]:
    """Pixel size of an image blob, or (0, 0) when the format is not recognized."""
    try:
        image = DocxImage.from_blob(blob)
    except IMAGE_ERRORS:
        return 0, 0
    return image.px_width, image.px_height


def _make_border(side: str, color: str, size: int = 4, space: int = 0):
    border = OxmlElement(f'w:{side}')
    border.set(qn('w:val'), 'single')
    border.set(qn('w:sz'), str(size))
    border.set(qn('w:space'), str(space))
    border.set(qn('w:color'), color)
    return border


def _make_shading(fill: str):
    shd = OxmlElement('w:shd')
    shd.set(qn('w:val'), 'clear')
    shd.set(qn('w:color'), 'auto')
    shd.set(qn('w:fill'), fill)
    return shd


def set_paragraph_shading(paragraph, fill: str):
    pPr = paragraph._p.get_or_add_pPr()
    pPr.insert_element_before(_make_shading(fill), *_PPR_AFTER_SHD)


def set_paragraph_border(paragraph, side: str, color: str, size: int = 4, space: int = 1):
    pPr = paragraph._p.get_or_add_pPr()
    pBdr = pPr.find(qn('w:pBdr'))
    if pBdr is None:
        pBdr = OxmlElement('w:pBdr')
        pPr.insert_element_before(pBdr, *_PPR_AFTER_PBDR)
    pBdr.append(_make_border(side, color, size, space))


def set_cell_style(cell, border_color: str, fill: Optional[str] = None):
    """Give a table cell single-line borders in one color and an optional background."""
    tcPr = cell._tc.get_or_add_tcPr()
    tcBorders = OxmlElement('w:tcBorders')
    for side in ('top', 'left', 'bottom', 'right'):
        tcBorders.append(_make_border(side, border_color))
    tcPr.insert_element_before(tcBorders, *_TCPR_AFTER_BORDERS)
    if fill:
        tcPr.insert_element_before(_make_shading(fill), *_TCPR_AFTER_SHD)


def _set_font(font, name: str):
    """Set the Latin and East Asian font, dropping theme fonts that would override them."""
    font.name = name
    rFonts = font.element.rPr.rFonts
    rFonts.set(qn('w:eastAsia'), name)
    for theme_attr in ('w:asciiTheme', 'w:hAnsiTheme', 'w:eastAsiaTheme', 'w:cstheme'):
        rFonts.attrib.pop(qn(theme_attr), None)


def _add_error_label(paragraph, text: str):
    run = paragraph.add_run(text)
    run.font.color.rgb = RGBColor(255, 0, 0)
    return run


# ==============================================================================
# SECTION 2: DOCUMENT-WIDE STYLES
# ==============================================================================
def apply_base_styles(doc):
    """
    Default body font and size with 1.5 line spacing, plus the heading palette.

    Args:
        doc: python-docx Document object.
    """
    normal = doc.styles['Normal']
    _set_font(normal.font, settings.DEFAULT_FONT)
    normal.font.size = Pt(settings.DEFAULT_FONT_SIZE)
    normal.paragraph_format.line_spacing = 1.5

    for level, (size_pt, color, italic) in HEADING_STYLES.items():
        heading = doc.styles[f'Heading {level}']
        _set_font(heading.font, settings.DEFAULT_FONT)
        heading.font.size = Pt(size_pt)
        heading.font.bold = True
        heading.font.italic = italic
        heading.font.color.rgb = RGBColor.from_string(color)


# ==============================================================================
# SECTION 3: INLINE CONTENT
# ==============================================================================
def _add_picture_run(paragraph, blob: bytes, width=None, height=None) -> bool:
    run = paragraph.add_run()
    try:
        run.add_picture(io.BytesIO(blob), width=width, height=height)
    except IMAGE_ERRORS as e:
        logger.warning("Rasterized image could not be embedded: %s", e)
        paragraph._p.remove(run._r)
        return False
    return True


async def _add_inline_math(paragraph, latex: str, options: ExportOptions, context: ExportContext):
    if options.math_mode == 'image':
        blob = await context.math_rasterizer.rasterize(latex)
        if blob and _add_picture_run(paragraph, blob, height=_px(INLINE_MATH_HEIGHT_PX)):
            return
        logger.info("Inline math image unavailable, using native equation for %r.", latex)
    paragraph._p.append(latex_to_omml(latex))


def _add_styled_text(paragraph, text: str, bold: bool):
    for index, bold_part in enumerate(_BOLD_RE.split(text)):
        if not bold_part:
            continue
        if index % 2 == 1:
            paragraph.add_run(bold_part[2:-2]).bold = True
            continue
        for sub_index, part in enumerate(_ITALIC_RE.split(bold_part)):
            if not part:
                continue
            if sub_index % 2 == 1 and len(part) > 2:
                run = paragraph.add_run(part[1:-1])
                run.italic = True
            else:
                run = paragraph.add_run(part)
            if bold:
                run.bold = True


async def add_inline_content(paragraph, text: str, options: ExportOptions, context: ExportContext,
                             bold: bool = False):
    """
    Split text on $...$ math and **bold** / *italic* markup and append the pieces in order.

    Args:
        paragraph: python-docx Paragraph to fill.
        text (str): Source text. Newlines become line breaks.
        options (ExportOptions): Export options (math_mode selects OMML or images).
        context (ExportContext): Collaborators for rasterized math.
        bold (bool): Force every text run bold (table headers).
    """
    for index, part in enumerate(_INLINE_MATH_RE.split(text)):
        if not part:
            continue
        if index % 2 == 1:
            await _add_inline_math(paragraph, part[1:-1], options, context)
        else:
            _add_styled_text(paragraph, part, bold)


# ==============================================================================
# SECTION 4: BLOCK EMITTERS
# ==============================================================================
def _strip_display_delimiters(content: str) -> str:
    return re.sub(r'^\$\$|\$\$$', '', content.strip()).strip()


def _is_display_math(content: str) -> bool:
    stripped = content.strip()
    return len(stripped) > 4 and stripped.startswith('$$') and stripped.endswith('$$')


async def add_diagram(doc, source: str, context: ExportContext):
    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    blob = await context.cache.get_or_render(context.diagram_renderer, source, context.options.chart_theme)
    if blob:
        width, height = image_size_px(blob)
        if not width or not height:
            width, height = DIAGRAM_FALLBACK_SIZE_PX
        if width > DIAGRAM_MAX_WIDTH_PX:
            height = height * DIAGRAM_MAX_WIDTH_PX / width
            width = DIAGRAM_MAX_WIDTH_PX
        if _add_picture_run(p, blob, width=_px(width), height=_px(height)):
            return

    logger.warning("Diagram could not be rendered, inserting placeholder label.")
    _add_error_label(p, DIAGRAM_FAILED_LABEL)


async def add_display_math(doc, latex: str, context: ExportContext):
    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    if context.options.math_mode == 'image':
        blob = await context.math_rasterizer.rasterize(latex)
        if blob:
            width, height = image_size_px(blob)
            if width and height:
                scaled_width = min(width * MATH_IMAGE_SCALE, MATH_IMAGE_MAX_WIDTH_PX)
                scaled_height = height * scaled_width / width
                if _add_picture_run(p, blob, width=_px(scaled_width), height=_px(scaled_height)):
                    return
        logger.info("Math image unavailable, using native equation.")

    p._p.append(latex_to_omml(latex, display=True))


def add_code_block(doc, content: str):
    p = doc.add_paragraph()
    set_paragraph_border(p, 'left', CODE_BORDER, size=24, space=4)
    set_paragraph_shading(p, CODE_SHADING)
    p.paragraph_format.line_spacing = 1.0

    run = p.add_run()
    # Run.text turns '\n' into w:br and '\t' into w:tab
    run.text = content
    _set_font(run.font, CODE_FONT)
    run.font.size = Pt(10)
    run.font.color.rgb = RGBColor.from_string('333333')


async def add_table(doc, table_data: ParsedTable, context: ExportContext):
    """
    Native table with a shaded, bold, centered header row.

    Rows shorter than the widest row are padded with empty cells.
    """
    columns = max([len(table_data.headers)] + [len(row) for row in table_data.rows])
    if columns == 0:
        return

    table = doc.add_table(rows=1, cols=columns)
    table.style = 'Table Grid'

    header_row = table.rows[0]
    tbl_header = OxmlElement('w:tblHeader')
    tbl_header.set(qn('w:val'), 'true')
    header_row._tr.get_or_add_trPr().append(tbl_header)

    for col, cell in enumerate(header_row.cells):
        set_cell_style(cell, TABLE_HEADER_BORDER, TABLE_HEADER_SHADING)
        p = cell.paragraphs[0]
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        text = table_data.headers[col] if col < len(table_data.headers) else ''
        await add_inline_content(p, text, context.options, context, bold=True)

    for row in table_data.rows:
        cells = table.add_row().cells
        for col, cell in enumerate(cells):
            set_cell_style(cell, TABLE_CELL_BORDER)
            text = row[col] if col < len(row) else ''
            await add_inline_content(cell.paragraphs[0], text, context.options, context)

    doc.add_paragraph()


async def add_list_item(doc, content: str, context: ExportContext):
    p = doc.add_paragraph(style='List Bullet')
    p.paragraph_format.space_after = Pt(4)
    await add_inline_content(p, content, context.options, context)


async def add_blockquote(doc, content: str, context: ExportContext):
    p = doc.add_paragraph()
    set_paragraph_shading(p, BLOCKQUOTE_SHADING)
    p.paragraph_format.left_indent = Pt(20)
    await add_inline_content(p, content, context.options, context)


def add_horizontal_rule(doc):
    p = doc.add_paragraph()
    set_paragraph_border(p, 'bottom', HR_BORDER, size=6, space=1)


async def add_paragraph(doc, content: str, context: ExportContext):
    if _is_display_math(content):
        await add_display_math(doc, _strip_display_delimiters(content), context)
        return
    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
    await add_inline_content(p, content, context.options, context)


async def add_block(doc, block: ContentBlock, context: ExportContext):
    if block.type == ContentType.CODE_BLOCK:
        language = (block.language or '').strip().lower()
        if language == 'mermaid':
            await add_diagram(doc, block.content, context)
        elif language in MATH_LANGUAGES or _is_display_math(block.content):
            await add_display_math(doc, _strip_display_delimiters(block.content), context)
        else:
            add_code_block(doc, block.content)
    elif block.type == ContentType.TABLE:
        if block.table_data is not None:
            await add_table(doc, block.table_data, context)
    elif block.type == ContentType.LIST_ITEM:
        await add_list_item(doc, block.content, context)
    elif block.type == ContentType.BLOCKQUOTE:
        await add_blockquote(doc, block.content, context)
    elif block.type == ContentType.HR:
        add_horizontal_rule(doc)
    else:
        await add_paragraph(doc, block.content, context)


# ==============================================================================
# SECTION 5: ASSEMBLY
# ==============================================================================
async def create_document(markdown: str, options: Optional[ExportOptions] = None, *,
                          diagram_renderer: Optional[DiagramRenderer] = None,
                          math_rasterizer: Optional[MathRasterizer] = None,
                          cache: Optional[DiagramCache] = None) -> bytes:
    """
    Convert a Markdown document into .docx bytes.

    Blocks are emitted sequentially in document order; the only awaits are the
    diagram and math rasterizer calls.

    Args:
        markdown (str): Markdown source.
        options (ExportOptions): Export options, defaults when omitted.
        diagram_renderer: Mermaid renderer, mermaid.ink by default.
        math_rasterizer: LaTeX image service, CodeCogs by default (image mode only).
        cache (DiagramCache): Shared diagram cache, a fresh one per call by default.

    Returns:
        bytes: The packaged .docx file.

    Raises:
        TypeError: If markdown is not a string.
        DocumentPackagingError: If the document cannot be saved.
    """
    if not isinstance(markdown, str):
        raise TypeError(f"Markdown input must be a string, got {type(markdown).__name__}")

    options = options or ExportOptions()
    markdown = strip_xml_invalid_chars(markdown)
    if options.unescape_latex:
        markdown = unescape_latex_markers(markdown)
    sections = parse_markdown_to_sections(markdown)

    context = ExportContext(
        options=options,
        diagram_renderer=diagram_renderer or MermaidInkRenderer(),
        math_rasterizer=math_rasterizer or CodecogsMathRasterizer(),
        cache=cache if cache is not None else DiagramCache(),
    )

    doc = Document()
    apply_base_styles(doc)

    if options.document_title:
        doc.add_heading(options.document_title, 0)

    for section in sections:
        level = section.level if 1 <= section.level <= 6 else 1
        doc.add_heading(section.title, level)
        for block in section.blocks:
            await add_block(doc, block, context)

    logger.info("Assembled %d section(s) (math mode '%s').", len(sections), options.math_mode)

    stream = io.BytesIO()
    try:
        doc.save(stream)
    except Exception as e:
        raise DocumentPackagingError(f"Could not package the document: {e}") from e
    return stream.getvalue()


def build_export_filename(filename: str = "document", today: Optional[date] = None) -> str:
    """'report' -> 'report_2024-05-01.docx'."""
    stem = Path(filename).stem or "document"
    return f"{stem}_{(today or date.today()).isoformat()}.docx"


async def export_to_file(markdown: str, output_dir=".", filename: str = "document",
                         options: Optional[ExportOptions] = None, **collaborators) -> Path:
    """Write the converted document to <output_dir>/<filename>_<YYYY-MM-DD>.docx and return its path."""
    docx_bytes = await create_document(markdown, options, **collaborators)
    output_path = Path(output_dir) / build_export_filename(filename)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(docx_bytes)
    logger.info("Document saved to %s (%d bytes).", output_path, len(docx_bytes))
    return output_path
