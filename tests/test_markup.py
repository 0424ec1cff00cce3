import pytest

from rtlflow.dom import Comment, IFrameElement
from rtlflow.errors import DocumentAccessError
from rtlflow.markup import complete_loading, load_html, parse_html, serialise


def test_round_trip_preserves_structure():
    markup = (
        "<!DOCTYPE html><html><head><style>p > b { color: red }</style></head>"
        '<body><p class="lead">a &amp; b<br><b>bold</b></p><!-- note --></body></html>'
    )
    assert serialise(parse_html(markup)) == markup


def test_inline_style_is_parsed_and_written_back():
    document = parse_html('<p style="COLOR: red; ; text-align:left">x</p>')
    paragraph = document.document_element
    assert paragraph.style.items() == [("color", "red"), ("text-align", "left")]
    assert "style" not in paragraph.attributes

    paragraph.style.set("direction", "rtl")
    assert serialise(document) == (
        '<p style="color: red; text-align: left; direction: rtl">x</p>'
    )


def test_comments_do_not_contribute_text():
    document = parse_html("<p>a<!-- hidden -->b</p>")
    paragraph = document.document_element
    assert isinstance(paragraph.children[1], Comment)
    assert paragraph.text_content == "ab"


def test_frames_get_documents_by_origin():
    document = parse_html(
        '<iframe srcdoc="&lt;p&gt;x&lt;/p&gt;"></iframe>'
        "<iframe></iframe>"
        '<iframe src="https://example.org/"></iframe>'
    )
    inline, blank, remote = [
        element for element in document.iter_elements() if isinstance(element, IFrameElement)
    ]
    assert inline.content_document.url == "about:srcdoc"
    assert inline.content_document.document_element.tag == "p"
    assert blank.content_document.url == "about:blank"
    with pytest.raises(DocumentAccessError):
        remote.content_document


def test_complete_loading_fires_events_in_order():
    document = parse_html('<iframe srcdoc="&lt;p&gt;x&lt;/p&gt;"></iframe>')
    frame = document.document_element
    events = []
    document.add_event_listener("DOMContentLoaded", lambda: events.append("ready"))
    document.add_event_listener("load", lambda: events.append("load"))
    frame.content_document.add_event_listener("load", lambda: events.append("frame-document"))
    frame.add_event_listener("load", lambda: events.append("frame"))

    complete_loading(document)
    assert events == ["ready", "load", "frame-document", "frame"]
    assert document.ready_state == "complete"
    assert frame.content_document.ready_state == "complete"


def test_srcdoc_is_serialised_from_the_live_frame_document():
    document = parse_html('<iframe srcdoc="&lt;p&gt;x&lt;/p&gt;"></iframe>')
    frame_paragraph = document.document_element.content_document.document_element
    frame_paragraph.style.set("direction", "rtl")
    assert serialise(document) == (
        '<iframe srcdoc="&lt;p style=&quot;direction: rtl&quot;&gt;x&lt;/p&gt;"></iframe>'
    )


def test_load_html_reads_utf8(tmp_path):
    path = tmp_path / "page.html"
    path.write_text("<p>مرحبا</p>", encoding="utf-8")
    document = load_html(path)
    assert document.url.startswith("file://")
    assert document.ready_state == "loading"
    assert document.document_element.text_content == "مرحبا"
