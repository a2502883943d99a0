# tests/test_text.py
# -*- coding: utf-8 -*-

import pytest

from rentwatch.utils.text import clean_text, html_to_text, short, strip_tags, truncate_hard


def test_clean_text_and_strip_tags():
    assert clean_text("  a \n\t b  ") == "a b"
    assert strip_tags("<p>A &amp; <b>B</b></p>") == "A & B"
    assert html_to_text("<html><script>x()</script><p>Цена</p></html>") == "Цена"


def test_short():
    assert short("x" * 50, 10) == "xxxxxxx..."
    assert short("abc", 10) == "abc"


def test_truncate_short_text_untouched():
    assert truncate_hard("<b>ok</b>", 100) == "<b>ok</b>"
    assert truncate_hard("abc", 0) == ""


@pytest.mark.parametrize("text,n,expected", [
    # cut inside the opening tag
    ("price <b>45 000</b>", 8, "price "),
    # cut inside the bold text: the unclosed <b> goes
    ("price <b>45 000</b>", 12, "price "),
    # cut inside the closing tag
    ("price <b>45 000</b>", 17, "price "),
    # cut inside href
    ('x\n<a href="https://lalafo.kg/ads/1">link</a>', 12, "x\n"),
    # cut inside link text
    ('x\n<a href="https://lalafo.kg/ads/1">link</a>', 38, "x\n"),
    # closed tags before the cut stay
    ("<b>1</b> <i>2</i> <b>3</b>", 22, "<b>1</b> <i>2</i> "),
    ("a &amp; b", 4, "a "),
])
def test_truncate_never_leaves_open_markup(text, n, expected):
    assert truncate_hard(text, n) == expected
