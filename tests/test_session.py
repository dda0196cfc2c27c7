import pytest

from reanchor import capture_anchor
from session import SnippetSession


BASE = "\n".join(f"Line {n}" for n in range(1, 16))
EDITED = "\n".join(BASE.split("\n")[:5] + ["Inserted A", "Inserted B"] + BASE.split("\n")[5:])


def test_capture_records_selection_and_context_lines():
    anchor = capture_anchor("a.txt", BASE, ((2, 0), (3, 6)))

    assert anchor["captured_text"] == anchor["text"] == "Line 3\nLine 4"
    assert anchor["range"] == ((2, 0), (3, 6))
    assert anchor["context_before"] == "Line 2"
    assert anchor["context_after"] == "Line 5"


def test_capture_at_document_edges_has_empty_context():
    anchor = capture_anchor("a.txt", "only line", ((0, 0), (0, 9)))

    assert anchor["context_before"] == ""
    assert anchor["context_after"] == ""


def test_capture_rejects_empty_selection():
    with pytest.raises(ValueError):
        capture_anchor("a.txt", BASE, ((1, 2), (1, 2)))


def test_add_snippet_deduplicates_same_document_and_range():
    session = SnippetSession()

    first = session.add_snippet("a.txt", BASE, ((0, 0), (4, 6)))
    again = session.add_snippet("a.txt", BASE, ((0, 0), (4, 6)))
    other = session.add_snippet("b.txt", BASE, ((0, 0), (4, 6)))

    assert first is again
    assert other is not first
    assert len(session.anchors) == 2
    assert session.anchors_for("a.txt") == [first]


def test_document_change_relocates_affected_anchors_and_notifies():
    calls = []
    session = SnippetSession(listener=lambda doc_id, ranges: calls.append((doc_id, ranges)))
    first = session.add_snippet("a.txt", BASE, ((0, 0), (4, 6)))
    second = session.add_snippet("a.txt", BASE, ((9, 0), (14, 7)))
    elsewhere = session.add_snippet("b.txt", BASE, ((9, 0), (14, 7)))

    results = session.document_changed("a.txt", EDITED)

    assert [outcome["status"] for _, outcome in results] == ["RELOCATED", "RELOCATED"]
    assert first["range"] == ((0, 0), (4, 6))
    assert second["range"] == ((11, 0), (16, 7))
    assert second["text"] == second["captured_text"]
    assert elsewhere["range"] == ((9, 0), (14, 7))
    assert calls == [("a.txt", [((0, 0), (4, 6)), ((11, 0), (16, 7))])]


def test_unrecoverable_anchor_keeps_previous_state():
    text = "code\n\n   \nmore"
    session = SnippetSession()
    anchor = session.add_snippet("a.txt", text, ((1, 0), (2, 3)))

    results = session.document_changed("a.txt", "completely\ndifferent")

    assert results[0][1]["status"] == "UNRECOVERABLE"
    assert results[0][1]["error"]["code"] == "EMPTY_TEMPLATE"
    assert anchor["range"] == ((1, 0), (2, 3))
    assert anchor["text"] == "\n   "


def test_strict_session_leaves_collapsed_anchor_untouched():
    session = SnippetSession(strict=True, matcher=lambda text, pattern, loc: -1)
    anchor = session.add_snippet("a.txt", BASE, ((2, 0), (3, 6)))

    results = session.document_changed("a.txt", "nothing in common")

    assert results[0][1]["error"]["code"] == "MARKERS_NOT_FOUND"
    assert anchor["range"] == ((2, 0), (3, 6))


def test_unrelated_document_change_is_ignored():
    calls = []
    session = SnippetSession(listener=lambda doc_id, ranges: calls.append(doc_id))
    session.add_snippet("a.txt", BASE, ((0, 0), (0, 6)))

    assert session.document_changed("b.txt", EDITED) == []
    assert calls == []


def test_remove_drops_only_the_given_anchor():
    session = SnippetSession()
    first = session.add_snippet("a.txt", BASE, ((0, 0), (0, 6)))
    second = session.add_snippet("a.txt", BASE, ((1, 0), (1, 6)))

    assert session.remove(first) is True
    assert session.remove(first) is False
    assert session.anchors == [second]
    assert session.highlight_ranges("a.txt") == [((1, 0), (1, 6))]
