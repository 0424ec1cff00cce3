import gc

from rtlflow.dom import Element, Text
from rtlflow.extractor import NodeCache, TextExtractor, read_text


def test_inputs_combine_value_and_placeholder():
    field = Element("input", {"value": "سلام", "placeholder": "name"})
    assert read_text(field) == "سلام name"


def test_textarea_falls_back_to_its_text():
    area = Element("textarea")
    area.append_child(Text("نص"))
    assert read_text(area) == "نص "


def test_generic_elements_use_full_text_content():
    paragraph = Element("p")
    paragraph.append_child(Text("Hello "))
    bold = paragraph.append_child(Element("b"))
    bold.append_child(Text("world"))
    assert read_text(paragraph) == "Hello world"


def test_extract_overwrites_the_cache_entry():
    cache = NodeCache()
    extractor = TextExtractor(cache)
    paragraph = Element("p")
    paragraph.append_child(Text("first"))

    assert extractor.extract(paragraph) == "first"
    cache.mark_processed(paragraph)
    assert cache.is_fresh(paragraph, "first")

    paragraph.children[0].data = "second"
    assert extractor.read(paragraph) == "second"
    assert cache.cached_text(paragraph) == "first"

    extractor.extract(paragraph)
    assert cache.cached_text(paragraph) == "second"
    assert not cache.is_processed(paragraph)


def test_cache_does_not_keep_elements_alive():
    cache = NodeCache()
    extractor = TextExtractor(cache)
    paragraph = Element("p")
    paragraph.append_child(Text("transient"))
    extractor.extract(paragraph)
    assert len(cache) == 1

    del paragraph
    gc.collect()
    assert len(cache) == 0
