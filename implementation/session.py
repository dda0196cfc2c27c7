#!/usr/bin/env python3
from typing import Optional, Tuple, List, Dict, Any, Callable

from reanchor import capture_anchor, reanchor, debug_print
from textdoc import Range

class SnippetSession:
    """
    Owns the snippets captured during one session and keeps them anchored
    as their documents change.

    `listener`, if given, is called as listener(document_id, ranges) after a
    document change was processed, e.g. to redraw highlights.
    """

    def __init__(self, listener: Optional[Callable[[str, List[Range]], None]] = None, strict: bool = False, debug: bool = False, **engine_options):
        self.anchors: List[Dict[str, Any]] = []
        self.listener = listener
        self.strict = strict
        self.debug = debug
        self.engine_options = engine_options

    def add_snippet(self, document_id: str, document_text: str, selection: Range) -> Dict[str, Any]:
        """Captures a selection; an identical (document, range) entry is returned instead of duplicated."""
        anchor = capture_anchor(document_id, document_text, selection)
        existing = next((a for a in self.anchors if a['document_id'] == document_id and a['range'] == anchor['range']), None)
        if existing is not None:
            debug_print(self.debug, "DUPLICATE SNIPPET", document_id=document_id, range=anchor['range'])
            return existing
        self.anchors.append(anchor)
        return anchor

    def remove(self, anchor: Dict[str, Any]) -> bool:
        for i, candidate in enumerate(self.anchors):
            if candidate is anchor:
                del self.anchors[i]
                return True
        return False

    def anchors_for(self, document_id: str) -> List[Dict[str, Any]]:
        return [a for a in self.anchors if a['document_id'] == document_id]

    def highlight_ranges(self, document_id: str) -> List[Range]:
        return [a['range'] for a in self.anchors_for(document_id)]

    def document_changed(self, document_id: str, document_text: str) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
        """
        Re-anchors every snippet of the changed document.

        RELOCATED outcomes overwrite the anchor's range and text; on
        UNRECOVERABLE the anchor keeps its previous state. Returns
        (anchor, outcome) pairs in session order.
        """
        affected = self.anchors_for(document_id)
        if not affected: return []

        results = []
        for anchor in affected:
            outcome = reanchor(anchor, document_text, strict=self.strict, debug=self.debug, **self.engine_options)
            if outcome['status'] == 'RELOCATED':
                anchor['range'], anchor['text'] = outcome['range'], outcome['text']
            else:
                debug_print(self.debug, "ANCHOR NOT RELOCATED", document_id=document_id, code=outcome['error']['code'], range=anchor['range'])
            results.append((anchor, outcome))

        if self.listener is not None:
            self.listener(document_id, self.highlight_ranges(document_id))
        return results
