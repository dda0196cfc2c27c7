from textdoc import TextDocument


def test_offsets_and_positions_follow_lines():
    doc = TextDocument("ab\ncde\n\nf")

    assert doc.line_count == 4
    assert doc.offset_at((1, 2)) == 5
    assert doc.position_at(5) == (1, 2)
    assert doc.position_at(3) == (1, 0)
    # The newline closing line 0 belongs to line 0.
    assert doc.position_at(2) == (0, 2)


def test_positions_and_offsets_are_clamped():
    doc = TextDocument("ab\ncde\n\nf")

    assert doc.position_at(-5) == (0, 0)
    assert doc.position_at(100) == (3, 1)
    assert doc.offset_at((10, 10)) == 9
    assert doc.offset_at((1, 99)) == 6
    assert doc.line_at(-1) == "ab"


def test_get_text_and_full_line_range():
    doc = TextDocument("ab\ncde\n\nf")

    assert doc.get_text() == "ab\ncde\n\nf"
    assert doc.get_text(((1, 0), (1, 3))) == "cde"
    assert doc.full_line_range(3, 1) == ((1, 0), (3, 1))
    assert doc.get_text(doc.full_line_range(0, 1)) == "ab\ncde"


def test_carriage_return_is_not_part_of_line_end():
    doc = TextDocument("a\r\nbc")

    assert doc.line_end(0) == 1
    assert doc.get_text(doc.full_line_range(0, 0)) == "a"
    assert doc.line_at(0).strip() == "a"


def test_empty_document_has_one_empty_line():
    doc = TextDocument("")

    assert doc.line_count == 1
    assert doc.position_at(0) == (0, 0)
    assert doc.full_line_range(0, 5) == ((0, 0), (0, 0))


def test_clamp_range_orders_and_bounds_positions():
    doc = TextDocument("one\ntwo")

    assert doc.clamp_range(((9, 9), (0, 1))) == ((0, 1), (1, 3))
