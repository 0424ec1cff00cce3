import pytest

from rtlflow.dom import Element, Text
from rtlflow.extractor import NodeCache
from rtlflow.watcher import ChangeWatcher, DebounceState, Debouncer


def find(document, tag, index=0):
    return [element for element in document.iter_elements() if element.tag == tag][index]


class Forwarded:
    def __init__(self):
        self.batches = []

    def __call__(self, nodes):
        self.batches.append(list(nodes))


@pytest.fixture
def forwarded():
    return Forwarded()


@pytest.fixture
def watch(host, forwarded):
    def build(document, *, accepting=lambda: True, cache=None):
        watcher = ChangeWatcher(
            document,
            host,
            cache if cache is not None else NodeCache(),
            delay_ms=150,
            accepting=accepting,
            forward=forwarded,
        )
        watcher.subscribe()
        return watcher

    return build


def test_debouncer_restarts_its_timer_and_accumulates(host):
    flushed = []
    debouncer = Debouncer(host, 150, flushed.append)
    first, second = Element("p"), Element("p")

    debouncer.push([first])
    host.advance(100)
    debouncer.push([second, first])
    assert debouncer.state is DebounceState.PENDING
    host.advance(100)
    assert flushed == []

    host.advance(50)
    assert flushed == [[first, second]]
    assert debouncer.state is DebounceState.IDLE


def test_debouncer_cancel_discards_pending_nodes(host):
    flushed = []
    debouncer = Debouncer(host, 150, flushed.append)
    debouncer.push([Element("p")])
    debouncer.cancel()
    host.run_until_idle()
    assert flushed == []


def test_text_edits_are_forwarded_after_the_quiet_period(make_document, host, watch, forwarded):
    document = make_document("<body><p>old</p><span>x</span></body>")
    watch(document)
    paragraph, span = find(document, "p"), find(document, "span")

    paragraph.children[0].data = "جديد"
    host.advance(100)
    span.text_content = "نص"
    host.advance(149)
    assert forwarded.batches == []

    host.advance(1)
    assert forwarded.batches == [[paragraph, span]]


def test_changed_elements_are_invalidated(make_document, host, watch):
    cache = NodeCache()
    document = make_document("<body><p>old</p></body>")
    paragraph = find(document, "p")
    cache.store_text(paragraph, "old")
    cache.mark_processed(paragraph)
    watch(document, cache=cache)

    paragraph.children[0].data = "new"
    host.run_until_idle()
    assert paragraph not in cache


def test_inserted_subtree_contributes_its_targets(make_document, host, watch, forwarded):
    document = make_document("<body><div id='root'></div></body>")
    watch(document)
    section = Element("section")
    heading = section.append_child(Element("h2"))
    heading.append_child(Text("عنوان"))
    item = section.append_child(Element("li"))

    find(document, "div").append_child(section)
    host.run_until_idle()
    assert forwarded.batches == [[heading, item]]


def test_categorized_parent_is_reprocessed_when_children_change(
    make_document, host, watch, forwarded
):
    document = make_document("<body><p>نص <b>غامق</b></p></body>")
    watch(document)
    paragraph = find(document, "p")
    find(document, "b").remove()
    host.run_until_idle()
    assert forwarded.batches == [[paragraph]]


def test_only_watched_attributes_trigger(make_document, host, watch, forwarded):
    document = make_document("<body><input value='a'></body>")
    watch(document)
    field = find(document, "input")

    field.set_attribute("class", "wide")
    host.run_until_idle()
    assert forwarded.batches == []

    field.value = "مرحبا"
    host.run_until_idle()
    assert forwarded.batches == [[field]]


def test_batches_are_dropped_while_not_accepting(make_document, host, watch, forwarded):
    accepting = {"value": False}
    document = make_document("<body><p>old</p></body>")
    watcher = watch(document, accepting=lambda: accepting["value"])

    find(document, "p").text_content = "new"
    host.run_until_idle()
    assert forwarded.batches == []
    assert watcher.dropped_batches == 1

    accepting["value"] = True
    find(document, "p").text_content = "newer"
    host.run_until_idle()
    assert len(forwarded.batches) == 1


def test_subscribe_is_idempotent_and_unsubscribe_stops_delivery(
    make_document, host, watch, forwarded
):
    document = make_document("<body><p>old</p></body>")
    watcher = watch(document)
    observer = watcher.observer
    watcher.subscribe()
    assert watcher.observer is observer

    watcher.unsubscribe()
    find(document, "p").text_content = "new"
    host.run_until_idle()
    assert forwarded.batches == []
    assert not watcher.subscribed
