# md2word/latex_converter.py
import logging
import re
from typing import List, Optional

from lxml import etree

from .latex_parser import parse_latex_to_structure
from .math_tree import build_math_tree
from .schemas import (AccentNode, CmdNode, FractionNode, GroupNode, LimitNode, MathNode, RadicalNode, ScriptNode,
                      SumNode, TextNode)

logger = logging.getLogger(__name__)

# --- 1. OMML namespace and constants ---
M_NAMESPACE = "http://schemas.openxmlformats.org/officeDocument/2006/math"
XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"
M_PREFIX = "{%s}" % M_NAMESPACE
NSMAP = {'m': M_NAMESPACE}

ACCENT_CHARS = {'vec': '⃗', 'bar': '̅', 'hat': '̂', 'dot': '̇', 'ddot': '̈'}
RUN_STYLES = {'plain': 'p', 'italic': 'i'}

# Characters XML 1.0 does not allow; lxml refuses text containing them
_XML_INVALID_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _m_tag(tag_name: str) -> str: return M_PREFIX + tag_name


def strip_xml_invalid_chars(text: str) -> str:
    return _XML_INVALID_RE.sub("", text)


def _m_element(tag_name: str) -> etree._Element:
    return etree.Element(_m_tag(tag_name), nsmap=NSMAP)


def _set_val(element: etree._Element, value: str) -> etree._Element:
    element.set(_m_tag('val'), value)
    return element


def _fill(parent: etree._Element, children: List[etree._Element]) -> etree._Element:
    for el in children: parent.append(el)
    return parent


# --- 2. OMML element builders ---
def _create_run_omml(text: str, style: Optional[str] = None) -> etree._Element:
    mr = _m_element('r')
    if style in RUN_STYLES:
        rpr = etree.SubElement(mr, _m_tag('rPr'))
        _set_val(etree.SubElement(rpr, _m_tag('sty')), RUN_STYLES[style])
    mt = etree.SubElement(mr, _m_tag('t'))
    if text != text.strip(): mt.set('{%s}space' % XML_NAMESPACE, 'preserve')
    mt.text = text
    return mr


def _create_fraction_omml(num: List[etree._Element], den: List[etree._Element]) -> etree._Element:
    mf = _m_element('f')
    _fill(etree.SubElement(mf, _m_tag('num')), num)
    _fill(etree.SubElement(mf, _m_tag('den')), den)
    return mf


def _create_radical_omml(base: List[etree._Element], degree: Optional[List[etree._Element]]) -> etree._Element:
    mrad = _m_element('rad')
    if degree is None:
        mradPr = etree.SubElement(mrad, _m_tag('radPr'))
        _set_val(etree.SubElement(mradPr, _m_tag('degHide')), '1')
    _fill(etree.SubElement(mrad, _m_tag('deg')), degree or [])
    _fill(etree.SubElement(mrad, _m_tag('e')), base)
    return mrad


def _create_accent_omml(base: List[etree._Element], char: str) -> etree._Element:
    macc = _m_element('acc')
    maccPr = etree.SubElement(macc, _m_tag('accPr'))
    _set_val(etree.SubElement(maccPr, _m_tag('chr')), char)
    _fill(etree.SubElement(macc, _m_tag('e')), base)
    return macc


def _create_script_omml(base: List[etree._Element], sub: Optional[List[etree._Element]],
                        sup: Optional[List[etree._Element]]) -> etree._Element:
    if sub is not None and sup is not None:
        tag = 'sSubSup'
    elif sub is not None:
        tag = 'sSub'
    else:
        tag = 'sSup'
    script = _m_element(tag)
    _fill(etree.SubElement(script, _m_tag('e')), base)
    if sub is not None: _fill(etree.SubElement(script, _m_tag('sub')), sub)
    if sup is not None: _fill(etree.SubElement(script, _m_tag('sup')), sup)
    return script


def _create_nary_omml(op: str, sub: Optional[List[etree._Element]], sup: Optional[List[etree._Element]],
                      base: List[etree._Element], is_integral: bool = False) -> etree._Element:
    mnary = _m_element('nary')
    mnaryPr = etree.SubElement(mnary, _m_tag('naryPr'))
    _set_val(etree.SubElement(mnaryPr, _m_tag('chr')), op)
    _set_val(etree.SubElement(mnaryPr, _m_tag('limLoc')), 'subSup' if is_integral else 'undOvr')
    if sub is None: _set_val(etree.SubElement(mnaryPr, _m_tag('subHide')), '1')
    if sup is None: _set_val(etree.SubElement(mnaryPr, _m_tag('supHide')), '1')
    _fill(etree.SubElement(mnary, _m_tag('sub')), sub or [])
    _fill(etree.SubElement(mnary, _m_tag('sup')), sup or [])
    _fill(etree.SubElement(mnary, _m_tag('e')), base)
    return mnary


def _create_limit_omml(name: str, limit: List[etree._Element]) -> etree._Element:
    mlim = _m_element('limLow')
    _fill(etree.SubElement(mlim, _m_tag('e')), [_create_run_omml(name, 'plain')])
    _fill(etree.SubElement(mlim, _m_tag('lim')), limit)
    return mlim


# --- 3. Node tree -> OMML ---
def ensure_children(elements: List[etree._Element]) -> List[etree._Element]:
    """Word rejects empty math containers, so an empty slot gets a single blank run."""
    return elements if elements else [_create_run_omml(' ')]


def render_to_docx_math(nodes: List[MathNode]) -> List[etree._Element]:
    """
    Convert resolved math nodes into OMML elements, preserving order.

    Args:
        nodes (List[MathNode]): Output of build_math_tree.

    Returns:
        List[etree._Element]: m:r / m:f / m:rad / m:nary / ... elements, ready to be
        appended to an m:oMath container.
    """
    elements: List[etree._Element] = []
    for node in nodes:
        if isinstance(node, TextNode):
            elements.append(_create_run_omml(node.val, node.style))
        elif isinstance(node, CmdNode):
            elements.append(_create_run_omml(node.val, 'plain'))
        elif isinstance(node, GroupNode):
            elements.extend(render_to_docx_math(node.children))
        elif isinstance(node, FractionNode):
            elements.append(_create_fraction_omml(ensure_children(render_to_docx_math(node.num)),
                                                  ensure_children(render_to_docx_math(node.den))))
        elif isinstance(node, RadicalNode):
            degree = ensure_children(render_to_docx_math(node.deg)) if node.deg is not None else None
            elements.append(_create_radical_omml(ensure_children(render_to_docx_math(node.children)), degree))
        elif isinstance(node, SumNode):
            sub = ensure_children(render_to_docx_math(node.sub)) if node.sub is not None else None
            sup = ensure_children(render_to_docx_math(node.sup)) if node.sup is not None else None
            # The summand stays in the surrounding run sequence; the n-ary body is a placeholder.
            elements.append(_create_nary_omml(node.symbol, sub, sup, [_create_run_omml('')], node.is_integral))
        elif isinstance(node, LimitNode):
            elements.append(_create_limit_omml(node.base, ensure_children(render_to_docx_math(node.sub))))
        elif isinstance(node, AccentNode):
            char = ACCENT_CHARS.get(node.accent, node.accent)
            elements.append(_create_accent_omml(ensure_children(render_to_docx_math(node.children)), char))
        elif isinstance(node, ScriptNode):
            if node.sub is None and node.sup is None:
                elements.extend(render_to_docx_math(node.base))
                continue
            base = ensure_children(render_to_docx_math(node.base))
            sub = ensure_children(render_to_docx_math(node.sub)) if node.sub is not None else None
            sup = ensure_children(render_to_docx_math(node.sup)) if node.sup is not None else None
            elements.append(_create_script_omml(base, sub, sup))
    return elements


def convert_latex_to_math(latex: str) -> List[etree._Element]:
    """
    Full LaTeX -> OMML pipeline. Never raises.

    Any failure along the way degrades to a single run holding the raw LaTeX source,
    and an empty result becomes one blank run.
    """
    latex = strip_xml_invalid_chars(latex)
    try:
        elements = render_to_docx_math(build_math_tree(parse_latex_to_structure(latex)))
    except Exception as e:
        logger.warning("Math conversion failed for %r, keeping the source text: %s", latex, e)
        return [_create_run_omml(latex)]
    return ensure_children(elements)


def latex_to_omml(latex_string: str, display: bool = False, alignment: str = 'center') -> etree._Element:
    """
    Wrap converted math in an m:oMath element, or in a justified m:oMathPara for display math.

    Args:
        latex_string (str): The LaTeX source without $ delimiters.
        display (bool): Emit a standalone equation paragraph instead of inline math.
        alignment (str): m:jc value for display math.

    Returns:
        etree._Element: Element to append to a w:p.
    """
    omml_math = _fill(_m_element('oMath'), convert_latex_to_math(latex_string))
    if not display:
        return omml_math

    omml_para = _m_element('oMathPara')
    omml_para_pr = etree.SubElement(omml_para, _m_tag('oMathParaPr'))
    _set_val(etree.SubElement(omml_para_pr, _m_tag('jc')), alignment)
    omml_para.append(omml_math)
    return omml_para
