"""
Terminal styling (SGR escape sequences) to HTML markup.

Captured console output and Playwright error messages carry colour and
emphasis as `ESC [ <params> m` sequences. AnsiMarkupConverter walks the
text segment by segment, keeps the set of active style declarations, and
emits literal text HTML-escaped inside a single <span style="..."> scope.
A changed declaration set closes the scope; the next literal text opens a
new one.
"""

from __future__ import annotations

import re
from html import escape
from typing import Dict, List, Optional, Tuple

# Splits text into literal segments and escape sequences (kept via the group)
SGR_PATTERN = re.compile(r"(\x1b\[[0-9;]*m)")

# Any CSI sequence, used when stripping styling for plain-text summaries
CSI_PATTERN = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

# Declarations applied by code 0; text styled only by these renders unstyled
RESET_DECLARATIONS: Tuple[Tuple[str, str], ...] = (
    ("color", "inherit"),
    ("font-weight", "normal"),
    ("font-style", "normal"),
    ("text-decoration", "none"),
    ("opacity", "1"),
    ("background-color", "inherit"),
)

# Single-code SGR parameters -> (css property, value)
SGR_STYLES: Dict[str, Tuple[str, str]] = {
    "1": ("font-weight", "bold"),
    "2": ("opacity", "0.6"),
    "3": ("font-style", "italic"),
    "4": ("text-decoration", "underline"),
    "23": ("font-style", "normal"),
    "24": ("text-decoration", "none"),
    "30": ("color", "#000"),
    "31": ("color", "#d00"),
    "32": ("color", "#0a0"),
    "33": ("color", "#aa0"),
    "34": ("color", "#00d"),
    "35": ("color", "#a0a"),
    "36": ("color", "#0aa"),
    "37": ("color", "#aaa"),
    "39": ("color", "inherit"),
    "40": ("background-color", "#000"),
    "41": ("background-color", "#d00"),
    "42": ("background-color", "#0a0"),
    "43": ("background-color", "#aa0"),
    "44": ("background-color", "#00d"),
    "45": ("background-color", "#a0a"),
    "46": ("background-color", "#0aa"),
    "47": ("background-color", "#aaa"),
    "49": ("background-color", "inherit"),
    "90": ("color", "#555"),
    "91": ("color", "#f55"),
    "92": ("color", "#5f5"),
    "93": ("color", "#ff5"),
    "94": ("color", "#55f"),
    "95": ("color", "#f5f"),
    "96": ("color", "#5ff"),
    "97": ("color", "#fff"),
    "100": ("background-color", "#555"),
    "101": ("background-color", "#f55"),
    "102": ("background-color", "#5f5"),
    "103": ("background-color", "#ff5"),
    "104": ("background-color", "#55f"),
    "105": ("background-color", "#f5f"),
    "106": ("background-color", "#5ff"),
    "107": ("background-color", "#fff"),
}

# Extended colour introducers -> property they set
EXTENDED_COLOR_CODES = {"38": "color", "48": "background-color"}

# SGR parameters that set several declarations at once.
# 22 ends both bold (1) and faint (2).
SGR_MULTI_STYLES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "22": (("font-weight", "normal"), ("opacity", "1")),
}

# Leading indentation of each line, allowing SGR sequences before it
LEADING_INDENT_PATTERN = re.compile(r"^((?:\x1b\[[0-9;]*m)*)([ \t]+)", re.MULTILINE)

# Stands in for indentation during conversion; escaping leaves it untouched
NBSP = "\u00a0"


def _escape_text(text: str) -> str:
    # html.escape maps ' to &#x27;; the report family uses &#039;
    return escape(text, quote=True).replace("&#x27;", "&#039;")


class AnsiMarkupConverter:
    """Stateful SGR -> <span> converter.

    One instance may be reused; every `convert` call starts from an empty
    style state. The lookup tables above are module-level and read-only.
    A scope is only opened when literal text follows a style change, so
    trailing or back-to-back sequences never produce empty spans.
    """

    def __init__(self):
        self._active: Dict[str, str] = {}
        self._out: List[str] = []
        self._open = False

    # -----------------------------
    # Public API
    # -----------------------------

    def convert(self, text: Optional[str]) -> str:
        if not text:
            return ""

        self._active = {}
        self._out = []
        self._open = False

        for segment in SGR_PATTERN.split(text):
            if not segment:
                continue
            if SGR_PATTERN.fullmatch(segment):
                self._apply(segment[2:-1])
            else:
                self._write(segment)

        self._close_scope()
        return "".join(self._out)

    # -----------------------------
    # State machine
    # -----------------------------

    def _apply(self, params: str) -> None:
        before = list(self._active.items())
        codes = params.split(";") if params else ["0"]

        i = 0
        while i < len(codes):
            code = codes[i] or "0"

            if code == "0":
                self._active = dict(RESET_DECLARATIONS)
            elif code in EXTENDED_COLOR_CODES:
                i = self._apply_extended(codes, i)
                continue
            elif code in SGR_MULTI_STYLES:
                for prop, value in SGR_MULTI_STYLES[code]:
                    self._set(prop, value)
            elif code in SGR_STYLES:
                prop, value = SGR_STYLES[code]
                self._set(prop, value)
            # Anything else is an SGR feature we do not render

            i += 1

        if list(self._active.items()) != before:
            self._close_scope()

    def _apply_extended(self, codes: List[str], i: int) -> int:
        """Handle 38/48 sequences; returns the index after the consumed params."""
        prop = EXTENDED_COLOR_CODES[codes[i]]
        mode = codes[i + 1] if i + 1 < len(codes) else ""

        if mode == "2":
            rgb = codes[i + 2:i + 5]
            if len(rgb) == 3 and all(c.isdigit() and int(c) <= 255 for c in rgb):
                self._set(prop, f"rgb({int(rgb[0])},{int(rgb[1])},{int(rgb[2])})")
            return i + 5
        if mode == "5":
            # 256-colour palette index; consumed but not rendered
            return i + 3
        return i + 1

    def _set(self, prop: str, value: str) -> None:
        # Replacing a property moves it to the end, so the latest code wins in CSS order
        self._active.pop(prop, None)
        self._active[prop] = value

    # -----------------------------
    # Scope handling
    # -----------------------------

    def _is_baseline(self) -> bool:
        return self._active == dict(RESET_DECLARATIONS)

    def _write(self, text: str) -> None:
        if not self._open:
            self._open_scope()
        self._out.append(_escape_text(text))

    def _open_scope(self) -> None:
        if not self._active or self._is_baseline():
            return
        style = ";".join(f"{prop}:{value}" for prop, value in self._active.items())
        self._out.append(f'<span style="{style}">')
        self._open = True

    def _close_scope(self) -> None:
        if self._open:
            self._out.append("</span>")
            self._open = False


def ansi_to_html(text: Optional[str]) -> str:
    """Convert one string; convenience wrapper around AnsiMarkupConverter."""
    return AnsiMarkupConverter().convert(text)


def strip_ansi(text: Optional[str]) -> str:
    """Remove escape sequences, leaving plain text (not HTML-escaped)."""
    if not text:
        return ""
    return CSI_PATTERN.sub("", text)


def format_error_html(text: Optional[str], converter: Optional[AnsiMarkupConverter] = None) -> str:
    """
    Render an error message for display in a <pre>-less block.

    Keeps leading indentation visible (spaces -> &nbsp;, tabs -> two
    &nbsp;), including on lines that start with a style change, applies
    ANSI conversion and turns newlines into <br>.
    """
    if not text:
        return ""

    def _indent(match: re.Match) -> str:
        return match.group(1) + match.group(2).replace("\t", NBSP * 2).replace(" ", NBSP)

    # Indentation is marked before conversion, while escape sequences are
    # still distinguishable from the markup that replaces them.
    marked = LEADING_INDENT_PATTERN.sub(_indent, text)
    html = (converter or AnsiMarkupConverter()).convert(marked)
    return html.replace(NBSP, "&nbsp;").replace("\r\n", "\n").replace("\n", "<br>")
