# -*- coding: utf-8 -*-
"""
HTML transformation: sanitization, header injection, text conversion.
"""

import html
import logging

import html2text
import lxml.etree
import lxml.html
import lxml.html.clean

logger = logging.getLogger(__name__)


# HTML cleaner configuration: drop active and remote content, keep presentation
ourCleaner = lxml.html.clean.Cleaner(
    scripts=True,
    javascript=True,
    comments=True,
    style=False,
    inline_style=False,
    links=True,
    meta=True,
    page_structure=False,
    processing_instructions=True,
    embedded=True,
    frames=True,
    forms=True,
    annoying_tags=True,
    remove_unknown_tags=False,
    safe_attrs_only=False,
    add_nofollow=False,
)


def bleach_content(tree):
    """Remove scripts, embedded objects, frames and forms"""
    return ourCleaner.clean_html(tree)


def _ensure_child(tree, tag, index):
    element = tree.find(tag)
    if element is None:
        element = lxml.html.Element(tag)
        tree.insert(index, element)
    return element


def prepare_html(body, header, bleach_html=True):
    """
    Build the HTML document handed to the renderer.

    The header block goes into a <pre> element at the top of <body> so its
    tab alignment survives rendering, and a utf-8 charset is declared.

    Args:
        body: Decoded text/html part
        header: Rendered header block
        bleach_html: Whether to sanitize the document first

    Returns:
        Serialized HTML string
    """
    try:
        tree = lxml.html.document_fromstring(body)
    except (lxml.etree.ParserError, ValueError) as e:
        logger.warning("Can't parse HTML part, printing it unparsed: %s", e)
        return (
            '<meta charset="utf-8"><pre class="mail-header">'
            + html.escape(header)
            + "</pre>"
            + body
        )

    if bleach_html:
        tree = bleach_content(tree)

    head = _ensure_child(tree, "head", 0)
    meta = lxml.html.Element("meta")
    meta.set("charset", "utf-8")
    head.insert(0, meta)

    body_element = _ensure_child(tree, "body", len(tree))
    pre = lxml.html.Element("pre")
    pre.set("class", "mail-header")
    pre.text = header
    body_element.insert(0, pre)

    return lxml.html.tostring(tree, encoding="unicode", doctype="<!DOCTYPE html>")


def make_html2text_converter():
    """Create configured html2text parser for converting HTML to plain text."""
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.single_line_break = False
    converter.ul_item_mark = "-"
    converter.emphasis_mark = "*"
    converter.strong_mark = "**"
    converter.ignore_emphasis = False
    converter.ignore_images = True
    converter.images_to_alt = True
    converter.default_image_alt = ""
    converter.unicode_snob = True
    converter.ignore_tables = False
    converter.pad_tables = True
    converter.ignore_links = False
    converter.skip_internal_links = True
    converter.inline_links = False
    converter.links_each_paragraph = True
    return converter


def html_to_text(body):
    """Convert an HTML part to printable plain text with links as footnotes"""
    return make_html2text_converter().handle(body)
