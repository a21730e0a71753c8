import io
from datetime import date

import docx.document
import pytest
from docx import Document
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor

from md2word.doc_generator import (DIAGRAM_FAILED_LABEL, DocumentPackagingError, ExportContext, add_inline_content,
                                   build_export_filename, create_document, export_to_file)
from md2word.latex_converter import M_NAMESPACE
from md2word.schemas import ExportOptions

NS = {"m": M_NAMESPACE}

SCENARIO = """# Report

Hello **world** with $x^2$.

| A | B |
|---|---|
| 1 | 2 |

```mermaid
graph TD; A-->B
```
"""


def _local(tag):
    return tag.split("}")[-1]


def _open(docx_bytes):
    return Document(io.BytesIO(docx_bytes))


def _body_tags(doc):
    return [_local(child.tag) for child in doc.element.body.iterchildren()]


async def _build(markdown, diagram_renderer, math_rasterizer, **options):
    return _open(await create_document(markdown, ExportOptions(**options), diagram_renderer=diagram_renderer,
                                       math_rasterizer=math_rasterizer))


@pytest.mark.asyncio
async def test_end_to_end_scenario(diagram_renderer, math_rasterizer):
    doc = await _build(SCENARIO, diagram_renderer, math_rasterizer)

    assert _body_tags(doc) == ["p", "p", "tbl", "p", "p", "sectPr"]

    heading = doc.paragraphs[0]
    assert heading.text == "Report"
    assert heading.style.name == "Heading 1"

    paragraph = doc.paragraphs[1]
    children = [_local(child.tag) for child in paragraph._p.iterchildren() if _local(child.tag) != "pPr"]
    assert children == ["r", "r", "r", "oMath", "r"]
    assert [run.text for run in paragraph.runs] == ["Hello ", "world", " with ", "."]
    assert paragraph.runs[1].bold is True
    omath = paragraph._p.find("m:oMath", NS)
    assert omath.find("m:sSup", NS) is not None

    table = doc.tables[0]
    assert [cell.text for cell in table.rows[0].cells] == ["A", "B"]
    assert [cell.text for cell in table.rows[1].cells] == ["1", "2"]
    assert all(run.bold for run in table.rows[0].cells[0].paragraphs[0].runs)

    (shape,) = doc.inline_shapes
    assert shape.width == Pt(450)
    assert shape.height == Pt(150)
    assert diagram_renderer.calls == [("graph TD; A-->B", "default")]


@pytest.mark.asyncio
async def test_failed_diagram_shows_red_label(failing_diagram_renderer, math_rasterizer):
    doc = await _build("```mermaid\ngraph TD; A-->B\n```", failing_diagram_renderer, math_rasterizer)
    label = doc.paragraphs[-1]
    assert label.text == DIAGRAM_FAILED_LABEL
    assert label.runs[0].font.color.rgb == RGBColor(255, 0, 0)
    assert len(doc.inline_shapes) == 0


@pytest.mark.asyncio
async def test_identical_diagrams_render_once_with_theme(diagram_renderer, math_rasterizer):
    markdown = "```mermaid\ngraph LR; X-->Y\n```\n\n```mermaid\ngraph LR; X-->Y\n```"
    doc = await _build(markdown, diagram_renderer, math_rasterizer, chart_theme="forest")
    assert len(doc.inline_shapes) == 2
    assert diagram_renderer.calls == [("graph LR; X-->Y", "forest")]


@pytest.mark.asyncio
async def test_math_block_and_dollar_paragraph_become_display_math(diagram_renderer, math_rasterizer):
    doc = await _build("$$\nE = mc^2\n$$\n\n$$a+b$$", diagram_renderer, math_rasterizer)
    paras = [p for p in doc.paragraphs if p._p.find("m:oMathPara", NS) is not None]
    assert len(paras) == 2
    assert math_rasterizer.calls == []


@pytest.mark.asyncio
async def test_image_math_mode_embeds_pictures(diagram_renderer, math_rasterizer):
    doc = await _build("$$\nx^2\n$$\n\nInline $y$ here.", diagram_renderer, math_rasterizer, math_mode="image")
    block, inline = doc.inline_shapes
    assert block.width == Pt(200 * 0.24 * 0.75)
    assert inline.height == Pt(14 * 0.75)
    assert math_rasterizer.calls == ["x^2", "y"]
    assert doc.element.body.find(".//m:oMath", NS) is None


@pytest.mark.asyncio
async def test_image_math_mode_falls_back_to_native(diagram_renderer, failing_math_rasterizer):
    doc = await _build("$$\nx^2\n$$\n\nInline $y$ here.", diagram_renderer, failing_math_rasterizer,
                       math_mode="image")
    assert len(doc.inline_shapes) == 0
    assert len(doc.element.body.findall(".//m:oMathPara", NS)) == 1
    assert len(doc.element.body.findall(".//m:oMath", NS)) == 2


@pytest.mark.asyncio
async def test_code_block_formatting(diagram_renderer, math_rasterizer):
    doc = await _build("```python\ndef f():\n    return 1\n```", diagram_renderer, math_rasterizer)
    (code,) = doc.paragraphs[-1:]
    run = code.runs[0]
    assert run.font.name == "Courier New"
    assert run.font.size == Pt(10)
    assert run._r.find(qn("w:br")) is not None
    assert code._p.pPr.find(qn("w:shd")).get(qn("w:fill")) == "F5F5F5"
    assert code._p.pPr.find(qn("w:pBdr")).find(qn("w:left")) is not None
    assert "    return 1" in code.text


@pytest.mark.asyncio
async def test_ragged_table_rows_are_padded(diagram_renderer, math_rasterizer):
    markdown = "| A | B |\n|---|---|\n| 1 |\n| 1 | 2 | 3 |"
    doc = await _build(markdown, diagram_renderer, math_rasterizer)
    table = doc.tables[0]
    assert len(table.columns) == 3
    assert [cell.text for cell in table.rows[0].cells] == ["A", "B", ""]
    assert [cell.text for cell in table.rows[1].cells] == ["1", "", ""]
    header_shading = table.rows[0].cells[0]._tc.tcPr.find(qn("w:shd"))
    assert header_shading.get(qn("w:fill")) == "F1F5F9"


@pytest.mark.asyncio
async def test_list_quote_and_rule(diagram_renderer, math_rasterizer):
    doc = await _build("- item\n\n> line one\n> line two\n\n---", diagram_renderer, math_rasterizer)
    item, quote, rule = doc.paragraphs[-3:]
    assert item.style.name == "List Bullet"
    assert item.text == "item"
    assert quote.text == "line one\nline two"
    assert quote._p.pPr.find(qn("w:shd")).get(qn("w:fill")) == "F0F0F0"
    assert rule._p.pPr.find(qn("w:pBdr")).find(qn("w:bottom")) is not None


@pytest.mark.asyncio
async def test_title_and_heading_level_clamp(diagram_renderer, math_rasterizer):
    doc = await _build("####### Deep\nbody", diagram_renderer, math_rasterizer, document_title="My Doc")
    assert doc.paragraphs[0].style.name == "Title"
    assert doc.paragraphs[0].text == "My Doc"
    assert doc.paragraphs[1].style.name == "Heading 1"


@pytest.mark.asyncio
async def test_base_styles_applied(diagram_renderer, math_rasterizer):
    doc = await _build("# H\ntext", diagram_renderer, math_rasterizer)
    assert doc.styles["Normal"].font.name == "Arial"
    assert doc.styles["Normal"].font.size == Pt(12)
    assert doc.styles["Heading 1"].font.size == Pt(24)
    assert doc.styles["Heading 6"].font.italic is True


@pytest.mark.asyncio
async def test_unescape_option_restores_math(diagram_renderer, math_rasterizer):
    doc = await _build(r"Value \$x\_1\$", diagram_renderer, math_rasterizer, unescape_latex=True)
    assert doc.paragraphs[-1]._p.find("m:oMath/m:sSub", NS) is not None


@pytest.mark.asyncio
async def test_inline_markup_splitting(math_rasterizer, diagram_renderer):
    doc = Document()
    paragraph = doc.add_paragraph()
    options = ExportOptions()
    context = ExportContext(options, diagram_renderer, math_rasterizer)
    await add_inline_content(paragraph, "a *b* c 2 ** 3", options, context)
    assert [run.text for run in paragraph.runs] == ["a ", "b", " c 2 ** 3"]
    assert paragraph.runs[1].italic is True


@pytest.mark.asyncio
async def test_non_string_markdown_raises_type_error():
    with pytest.raises(TypeError):
        await create_document(None)


@pytest.mark.asyncio
async def test_packaging_failure_raises(monkeypatch, diagram_renderer, math_rasterizer):
    def broken_save(self, path_or_stream):
        raise OSError("disk full")

    monkeypatch.setattr(docx.document.Document, "save", broken_save)
    with pytest.raises(DocumentPackagingError):
        await create_document("text", diagram_renderer=diagram_renderer, math_rasterizer=math_rasterizer)


@pytest.mark.asyncio
async def test_export_to_file_writes_dated_docx(tmp_path, diagram_renderer, math_rasterizer):
    path = await export_to_file("# Notes\nbody", tmp_path, filename="notes",
                                diagram_renderer=diagram_renderer, math_rasterizer=math_rasterizer)
    assert path == tmp_path / f"notes_{date.today().isoformat()}.docx"
    assert _open(path.read_bytes()).paragraphs[0].text == "Notes"


def test_build_export_filename():
    assert build_export_filename("report.md", date(2024, 5, 1)) == "report_2024-05-01.docx"
    assert build_export_filename("", date(2024, 5, 1)) == "document_2024-05-01.docx"


@pytest.mark.asyncio
async def test_truncated_diagram_image_shows_red_label(truncated_diagram_renderer, math_rasterizer):
    doc = await _build("```mermaid\ngraph TD; A-->B\n```\n\nafter", truncated_diagram_renderer, math_rasterizer)
    label = doc.paragraphs[-2]
    assert label.text == DIAGRAM_FAILED_LABEL
    assert label.runs[0].font.color.rgb == RGBColor(255, 0, 0)
    assert doc.paragraphs[-1].text == "after"
    assert len(doc.inline_shapes) == 0


@pytest.mark.asyncio
async def test_truncated_math_image_falls_back_to_native(diagram_renderer, truncated_math_rasterizer):
    doc = await _build("$$\nx^2\n$$\n\nInline $y$ here.", diagram_renderer, truncated_math_rasterizer,
                       math_mode="image")
    assert truncated_math_rasterizer.calls == ["x^2", "y"]
    assert len(doc.inline_shapes) == 0
    assert len(doc.element.body.findall(".//m:oMathPara", NS)) == 1
    assert len(doc.element.body.findall(".//m:oMath", NS)) == 2


@pytest.mark.asyncio
async def test_control_characters_do_not_abort_export(diagram_renderer, math_rasterizer):
    doc = await _build("hello\x01world and $a\x02b$\n\n| A\x03 | B |\n|---|---|\n| 1 | 2 |",
                       diagram_renderer, math_rasterizer)
    (para,) = [p for p in doc.paragraphs if p.text.startswith("hello")]
    assert para.text.startswith("helloworld and")
    assert [t.text for t in para._p.findall(".//m:t", NS)] == ["a", "b"]
    assert doc.tables[0].cell(0, 0).text == "A"
