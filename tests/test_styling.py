import pytest

from rtlflow.dom import Element
from rtlflow.extractor import NodeCache
from rtlflow.structures import EngineConfig
from rtlflow.styling import (
    APPLIED_ATTRIBUTE,
    RATIO_ATTRIBUTE,
    StyleApplicator,
    best_text_align,
    has_ltr_override,
    is_styled,
)
from rtlflow.selector import categorize


@pytest.fixture
def styler():
    return StyleApplicator(EngineConfig(), NodeCache())


def test_apply_sets_direction_alignment_and_markers(styler):
    element = Element("p")
    assert styler.apply(element, 0.857)

    assert element.style.get("direction") == "rtl"
    assert element.style.get("text-align") == "right"
    assert element.style.get("unicode-bidi") == "embed"
    assert element.style.get("transition") == "all 0.3s ease"
    assert element.get_attribute(APPLIED_ATTRIBUTE) == "true"
    assert element.get_attribute(RATIO_ATTRIBUTE) == "0.86"


def test_apply_is_idempotent_within_tolerance(styler):
    element = Element("p")
    assert styler.apply(element, 0.5)
    assert not styler.apply(element, 0.505)
    assert element.get_attribute(RATIO_ATTRIBUTE) == "0.50"
    assert styler.apply(element, 0.8)
    assert element.get_attribute(RATIO_ATTRIBUTE) == "0.80"


def test_explicit_ltr_is_never_overridden(styler):
    element = Element("p", {"dir": " LTR "})
    assert has_ltr_override(element)
    assert not styler.apply(element, 1.0)
    assert not is_styled(element)
    assert "direction" not in element.style


def test_editable_container_uses_plaintext_bidi(styler):
    element = Element("div", {"contenteditable": "true"})
    styler.apply(element, 1.0)
    assert element.style.get("unicode-bidi") == "plaintext"
    assert "direction" not in element.style


def test_alignment_depends_on_category():
    assert best_text_align(categorize(Element("button"))) == "center"
    assert best_text_align(categorize(Element("td"))) == "inherit"
    assert best_text_align(categorize(Element("li"))) == "right"


def test_visual_feedback_can_be_switched_off():
    styler = StyleApplicator(EngineConfig(visual_feedback=False), NodeCache())
    element = Element("span")
    styler.apply(element, 1.0)
    assert "transition" not in element.style


def test_revert_restores_author_styles(styler):
    element = Element("p", {"style": "text-align: center; color: red"})
    styler.apply(element, 1.0)
    assert element.style.get("text-align") == "right"

    assert styler.revert(element)
    assert element.style.items() == [("text-align", "center"), ("color", "red")]
    assert not element.has_attribute(APPLIED_ATTRIBUTE)
    assert not element.has_attribute(RATIO_ATTRIBUTE)
    assert not styler.revert(element)


def test_remove_all_reverts_and_invalidates(make_document):
    cache = NodeCache()
    styler = StyleApplicator(EngineConfig(), cache)
    document = make_document("<body><p>أ</p><h1>ب</h1><span>c</span></body>")
    paragraph, heading, span = [
        element for element in document.iter_elements() if element.tag != "body"
    ]
    for element in (paragraph, heading):
        cache.store_text(element, element.text_content)
        cache.mark_processed(element)
        styler.apply(element, 1.0)

    assert styler.remove_all(document) == 2
    assert not is_styled(paragraph)
    assert not is_styled(heading)
    assert paragraph not in cache
    assert len(heading.style) == 0
    assert span.attributes == {}
