#!/usr/bin/env python3
import os
import sys
import argparse
import difflib
import json
from typing import Optional, Tuple, List, Dict, Any, Callable

from diff_match_patch import diff_match_patch

from textdoc import TextDocument, Range

FUZZY_THRESHOLD = 0.8
PROXIMITY = 50
MIN_MATCH_RATIO = 0.8
MAX_FUZZY_PATTERN = 32  # Bitap bit width

# match(text, pattern, loc) -> offset or -1
Matcher = Callable[[str, str, int], int]

def visualize_str(s: str) -> str:
    """Makes special characters visible for debugging."""
    if not isinstance(s, str): return repr(s)
    return s.replace('\t', '\\t').replace('\r', '\\r').replace('\n', '\\n\n')

def debug_print(debug_flag: bool, title: str, **kwargs):
    """Prints a formatted debug message if the debug flag is set."""
    if not debug_flag: return
    print(f"\n--- DEBUG: {title} ---")
    for key, value in kwargs.items():
        if isinstance(value, str) and len(value) > 80:
            print(f"  {key} (len={len(value)}):")
            print(f"    Visualized: {visualize_str(value[:200])}... (truncated)")
        else:
            print(f"  {key}: {visualize_str(value)}")
    print("--------------------" + "-" * len(title))

def template_lines(text: Optional[str]) -> List[str]:
    """Trimmed, non-blank lines of a captured snippet."""
    return [line.strip() for line in (text or "").split('\n') if line.strip()]

def bitap_matcher(threshold: float = FUZZY_THRESHOLD, max_pattern: int = MAX_FUZZY_PATTERN) -> Matcher:
    """
    Builds an approximate substring matcher seeded at an offset.

    Backed by diff-match-patch's Bitap search. Patterns wider than the bit
    vector fall back to a plain substring search from the seed offset.
    """
    dmp = diff_match_patch()
    dmp.Match_Threshold = threshold

    def match(text: str, pattern: str, loc: int) -> int:
        if not pattern or not text: return -1
        loc = max(0, min(loc, len(text)))
        if max_pattern and len(pattern) > max_pattern:
            return text.find(pattern, loc)
        return dmp.match_main(text, pattern, loc)

    return match

def get_fuzzy_matches(content: str, snippet: str, cutoff: float = 0.7) -> List[Dict[str, Any]]:
    """
    Finds multi-line fuzzy matches for a snippet within content using a sliding window.
    """
    normalized_snippet_lines = template_lines(snippet)
    if not normalized_snippet_lines:
        return []

    snippet_as_block = "\n".join(normalized_snippet_lines)
    window_size = len(normalized_snippet_lines)

    # Normalize the source content, but keep track of original line numbers.
    original_content_lines = (content or "").splitlines()
    source_lines_with_meta = [
        (i + 1, line.strip())
        for i, line in enumerate(original_content_lines)
        if line.strip()
    ]

    matches = []
    for i in range(len(source_lines_with_meta) - window_size + 1):
        window_meta = source_lines_with_meta[i : i + window_size]
        window_as_block = "\n".join(meta[1] for meta in window_meta)

        ratio = difflib.SequenceMatcher(None, snippet_as_block, window_as_block).ratio()
        if ratio >= cutoff:
            start_line_idx = window_meta[0][0] - 1
            end_line_idx = window_meta[-1][0]
            matches.append({
                "line_number": window_meta[0][0],
                "score": round(ratio, 4),
                "text": "\n".join(original_content_lines[start_line_idx:end_line_idx])
            })

    return sorted(matches, key=lambda x: x['score'], reverse=True)[:3]

def capture_anchor(document_id: str, document_text: str, selection: Range) -> Dict[str, Any]:
    """Creates a snippet anchor from a selection in the document's current text."""
    doc = TextDocument(document_text)
    rng = doc.clamp_range(selection)
    text = doc.get_text(rng)
    if not text:
        raise ValueError("No selection.")
    (start_line, _), (end_line, _) = rng
    return {
        "document_id": document_id,
        "captured_text": text,
        "range": rng,
        "text": text,
        "context_before": doc.lines[start_line - 1] if start_line > 0 else "",
        "context_after": doc.lines[end_line + 1] if end_line < doc.line_count - 1 else "",
    }

def _median(offsets: List[int]) -> int:
    ordered = sorted(offsets)
    return ordered[len(ordered) // 2]

def _empty_template(captured_text: Optional[str]) -> Dict[str, Any]:
    return {"status": "UNRECOVERABLE", "error": {"code": "EMPTY_TEMPLATE", "message": "Captured text has no non-blank lines.", "context": {"captured_text": captured_text or ""}}}

def track_lines(template: List[str], doc: TextDocument, matcher: Matcher, proximity: int = PROXIMITY, debug: bool = False) -> List[int]:
    """
    Locates each template line in order, returning one offset per line (-1 if unmatched).

    Exact line matches are tried first from the line holding the search cursor;
    a line claimed by an earlier exact match is never claimed twice. Otherwise a
    fuzzy match at or after the cursor is accepted when it lies within
    `proximity` characters of the median of the offsets found so far.
    Accepted offsets never decrease.
    """
    matched, found = [], []
    cursor, last_exact_line = 0, -1

    for idx, line in enumerate(template):
        offset, exact_line = -1, None
        for i in range(max(doc.line_of(cursor), last_exact_line + 1), doc.line_count):
            if doc.lines[i].strip() == line:
                exact_line = i
                break

        if exact_line is not None:
            raw = doc.lines[exact_line]
            offset = doc.offset_at((exact_line, len(raw) - len(raw.lstrip())))
            debug_print(debug, f"EXACT MATCH #{idx + 1}", line=line, doc_line=exact_line + 1, offset=offset)
        else:
            approx = matcher(doc.text, line, cursor)
            if approx != -1 and approx >= cursor:
                if not found:
                    offset = approx
                elif abs(approx - _median(found)) <= proximity:
                    offset = approx
                else:
                    debug_print(debug, f"FUZZY REJECTED #{idx + 1}", line=line, offset=approx, median=_median(found), proximity=proximity)
            if offset != -1: debug_print(debug, f"FUZZY MATCH #{idx + 1}", line=line, offset=offset, cursor=cursor)

        if offset != -1 and (not found or offset >= found[-1]):
            matched.append(offset)
            found.append(offset)
            cursor = offset + len(line)
            if exact_line is not None: last_exact_line = exact_line
        else:
            debug_print(debug, f"NO MATCH #{idx + 1}", line=line, cursor=cursor)
            matched.append(-1)

    return matched

def marker_fallback(captured_text: str, document_text: str, strict: bool = False, debug: bool = False) -> Dict[str, Any]:
    """
    Relocates a snippet using only its first and last non-blank lines.

    The first marker is searched forward (default: first line), the last marker
    backward (default: last line). When neither marker is found the result
    covers the whole document and is flagged `low_confidence`, or reported as
    UNRECOVERABLE in strict mode.
    """
    template = template_lines(captured_text)
    if not template: return _empty_template(captured_text)

    doc = TextDocument(document_text)
    first_marker, last_marker = template[0], template[-1]
    stripped = [line.strip() for line in doc.lines]
    start = next((i for i, line in enumerate(stripped) if line == first_marker), None)
    end = next((i for i in range(len(stripped) - 1, -1, -1) if stripped[i] == last_marker), None)
    collapsed = start is None and end is None
    debug_print(debug, "MARKER FALLBACK", first_marker=first_marker, last_marker=last_marker, start=start, end=end)

    if collapsed and strict:
        preview_lines = [l for l in doc.lines if l.strip()]
        context = {
            "first_marker": first_marker,
            "last_marker": last_marker,
            "fuzzy_matches": get_fuzzy_matches(document_text, captured_text),
            "document_preview": "\n".join(preview_lines[:7])
        }
        return {"status": "UNRECOVERABLE", "error": {"code": "MARKERS_NOT_FOUND", "message": "Neither boundary marker was found.", "context": context}}

    rng = doc.full_line_range(0 if start is None else start, doc.line_count - 1 if end is None else end)
    return {
        "status": "RELOCATED",
        "strategy": "markers",
        "range": rng,
        "text": doc.get_text(rng),
        "markers": {"first": start, "last": end},
        "low_confidence": collapsed,
    }

def hybrid_match(captured_text: str, document_text: str, matcher: Optional[Matcher] = None, threshold: float = FUZZY_THRESHOLD, proximity: int = PROXIMITY, min_ratio: float = MIN_MATCH_RATIO, debug: bool = False) -> Tuple[Optional[Dict[str, Any]], float]:
    """
    Runs line tracking alone. Returns (outcome, match_ratio); the outcome is None
    when the ratio is below `min_ratio`.
    """
    template = template_lines(captured_text)
    if not template: return _empty_template(captured_text), 0.0

    doc = TextDocument(document_text)
    offsets = track_lines(template, doc, matcher or bitap_matcher(threshold), proximity, debug)
    found = [o for o in offsets if o != -1]
    ratio = len(found) / len(template)
    debug_print(debug, "HYBRID RESULT", matched=len(found), total=len(template), ratio=round(ratio, 4))
    if ratio < min_ratio: return None, ratio

    rng = doc.full_line_range(doc.line_of(min(found)), doc.line_of(max(found)))
    return {
        "status": "RELOCATED",
        "strategy": "hybrid",
        "range": rng,
        "text": doc.get_text(rng),
        "offsets": offsets,
        "ratio": round(ratio, 4),
        "low_confidence": False,
    }, ratio

def reanchor(anchor: Dict[str, Any], document_text: str, matcher: Optional[Matcher] = None, threshold: float = FUZZY_THRESHOLD, proximity: int = PROXIMITY, min_ratio: float = MIN_MATCH_RATIO, strict: bool = False, debug: bool = False) -> Dict[str, Any]:
    """
    Relocates an anchor's captured text inside the current document text.

    The anchor is not modified. The template is always `captured_text`, never
    the last relocated text. Returns a RELOCATED outcome with a whole-line
    range, or UNRECOVERABLE.
    """
    captured_text = anchor.get('captured_text') or ""
    document_text = document_text or ""
    debug_print(debug, "REANCHOR", document_id=anchor.get('document_id'), captured_text=captured_text, document_len=len(document_text))

    outcome, ratio = hybrid_match(captured_text, document_text, matcher, threshold, proximity, min_ratio, debug)
    if outcome is not None: return outcome

    debug_print(debug, "HYBRID FAILED", ratio=round(ratio, 4), min_ratio=min_ratio)
    outcome = marker_fallback(captured_text, document_text, strict, debug)
    if outcome['status'] == 'RELOCATED': outcome['ratio'] = round(ratio, 4)
    else: outcome['error']['context']['ratio'] = round(ratio, 4)
    return outcome

def parse_line_span(span: str) -> Tuple[int, int]:
    """Parses a 1-based inclusive 'START-END' (or single 'N') span into zero-based lines."""
    parts = (span or "").strip().split('-')
    if len(parts) > 2 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"Invalid line span '{span}'. Expected START-END.")
    start, end = int(parts[0]), int(parts[-1])
    if start < 1 or end < start:
        raise ValueError(f"Invalid line span '{span}'. Lines are 1-based and START <= END.")
    return start - 1, end - 1

def read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8', newline=None) as f:
        return f.read()

def reanchor_file(document_path: str, original_path: Optional[str] = None, lines: Optional[str] = None, snippet_path: Optional[str] = None, json_report: bool = False, debug: bool = False, strict: bool = False, threshold: float = FUZZY_THRESHOLD, proximity: int = PROXIMITY, min_ratio: float = MIN_MATCH_RATIO, failure_report_path: Optional[str] = None, create_failure_case: bool = False) -> Dict[str, Any]:
    document_text, captured_text = None, None

    def create_failure_case_file(filename: str, details: Dict[str, Any]):
        """Creates a detailed log file for a failed relocation for debugging."""
        try:
            with open(filename, 'w', encoding='utf-8') as f:
                f.write("--- BEGIN ERROR DETAILS ---\n")
                f.write(json.dumps(details, indent=2))
                f.write("\n--- END ERROR DETAILS ---\n\n")
                for title, value in [("CAPTURED SNIPPET", captured_text), ("CURRENT DOCUMENT CONTENT", document_text)]:
                    f.write(f"--- BEGIN {title} ---\n")
                    f.write(value if value is not None else f"[{title.lower()} not available for this error type]")
                    if not (value or "").endswith('\n'):
                        f.write('\n')
                    f.write(f"--- END {title} ---\n\n")
            if not json_report:
                print(f"Created failure case report: {filename}")
        except IOError as e:
            if not json_report:
                print(f"ERROR: Could not write failure case report to {filename}: {e}")

    def report_error(details):
        if failure_report_path:
            try:
                with open(failure_report_path, 'w', encoding='utf-8') as f:
                    json.dump(details, f, indent=2)
                if not json_report: print(f"Failure report saved to: {failure_report_path}")
            except IOError as e:
                print(f"Failed to save failure report: {e}")
        if create_failure_case:
            create_failure_case_file("reanchor_failed.log", details)

        if not json_report:
            print(f"\nERROR in document '{document_path}': {details['error']['message']}")
            ctx = details['error'].get('context', {})
            for key in ['first_marker', 'last_marker', 'path']:
                if ctx.get(key): print(f"  {key.replace('_', ' ').title()}: {visualize_str(ctx[key])}")
            if ctx.get('fuzzy_matches'):
                print("  Did you mean one of these?")
                for match in ctx['fuzzy_matches']:
                    print(f"    Line {match['line_number']} (Score: {match['score']}):")
                    for line in (match['text'] or "").splitlines():
                        print(f"        {visualize_str(line)}")
        return details

    if (snippet_path is None) == (original_path is None):
        return report_error({"status": "UNRECOVERABLE", "error": {"code": "INVALID_ARGUMENTS", "message": "Give exactly one of --snippet or --original.", "context": {}}})
    if original_path is not None and not lines:
        return report_error({"status": "UNRECOVERABLE", "error": {"code": "INVALID_ARGUMENTS", "message": "--original requires --lines.", "context": {}}})

    for path in [document_path, original_path or snippet_path]:
        if not os.path.isfile(path):
            return report_error({"status": "UNRECOVERABLE", "error": {"code": "FILE_NOT_FOUND", "message": "Input file not found.", "context": {"path": path}}})

    document_text = read_text(document_path)
    if snippet_path is not None:
        captured_text = read_text(snippet_path)
        anchor = {"document_id": document_path, "captured_text": captured_text, "text": captured_text}
    else:
        try:
            start_line, end_line = parse_line_span(lines)
            original = TextDocument(read_text(original_path))
            if end_line >= original.line_count:
                raise ValueError(f"Line span '{lines}' is outside '{original_path}' ({original.line_count} lines).")
            anchor = capture_anchor(document_path, original.text, original.full_line_range(start_line, end_line))
        except ValueError as e:
            return report_error({"status": "UNRECOVERABLE", "error": {"code": "INVALID_ARGUMENTS", "message": str(e), "context": {}}})
        captured_text = anchor['captured_text']
    debug_print(debug, "CAPTURED ANCHOR", document=document_path, captured_text=captured_text)

    outcome = reanchor(anchor, document_text, threshold=threshold, proximity=proximity, min_ratio=min_ratio, strict=strict, debug=debug)
    if outcome['status'] != 'RELOCATED':
        return report_error(outcome)
    return outcome

def main():
    parser = argparse.ArgumentParser(description="Relocate a captured snippet inside an edited document.")
    parser.add_argument("document", help="Path to the current (edited) document.")
    parser.add_argument("--original", help="Path to the document the snippet was captured from.")
    parser.add_argument("--lines", help="1-based inclusive line span of the snippet in --original, e.g. 10-15.")
    parser.add_argument("--snippet", help="Path to a file holding the captured snippet text.")
    parser.add_argument("--strict", action="store_true", help="Report UNRECOVERABLE when no boundary marker is found instead of selecting the whole document.")
    parser.add_argument("--threshold", type=float, default=FUZZY_THRESHOLD, help=f"Fuzzy match threshold, 0.0 exact to 1.0 anything (default: {FUZZY_THRESHOLD}).")
    parser.add_argument("--proximity", type=int, default=PROXIMITY, help=f"Max distance in characters of a fuzzy match from the median of earlier matches (default: {PROXIMITY}).")
    parser.add_argument("--min-ratio", type=float, default=MIN_MATCH_RATIO, help=f"Share of lines that must match before falling back to boundary markers (default: {MIN_MATCH_RATIO}).")
    parser.add_argument("--json-report", action="store_true", help="Output the machine-readable JSON outcome.")
    parser.add_argument("--failure-report", help="Path to save a detailed JSON report on failure (includes context).")
    parser.add_argument("--create-failure-case", action="store_true", help="On failure, create reanchor_failed.log with full context for debugging.")
    parser.add_argument("--debug", action="store_true", help="Enable detailed debug logging.")
    parser.add_argument("-v", "--version", action="version", version="reanchor 1.0")

    args = parser.parse_args()
    result = reanchor_file(args.document, args.original, args.lines, args.snippet, args.json_report, args.debug, args.strict, args.threshold, args.proximity, args.min_ratio, args.failure_report, args.create_failure_case)

    if args.json_report:
        print(json.dumps(result, indent=2))
    elif result['status'] == 'RELOCATED':
        (start_line, _), (end_line, _) = result['range']
        note = " [low confidence]" if result.get('low_confidence') else ""
        print(f"Relocated ({result['strategy']}) to lines {start_line + 1}-{end_line + 1}{note}")
        print(result['text'])

    if result["status"] != "RELOCATED":
        sys.exit(1)

if __name__ == '__main__':
    main()
