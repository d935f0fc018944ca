"""Minimal RTF reader/writer for note bodies.

RTF is the primary note format.  A note's ``content`` keeps the raw RTF
markup; this module only converts plain text *into* a minimal RTF document
(for newly created notes) and extracts readable text back *out* of RTF
(for previews and for plain-text renames).
"""

from __future__ import annotations

import re

_RTF_PREFIX = "{\\rtf"

_HEADER = "{\\rtf1\\ansi\\ansicpg1252\\deff0{\\fonttbl{\\f0\\fswiss Helvetica;}}\\f0\\fs24 "

# \word[-N][space] | \'hh | \<symbol> | brace | newline | any other character
_TOKEN_RE = re.compile(
    r"\\([a-z]{1,32})(-?\d{1,10})?[ ]?|\\'([0-9a-f]{2})|\\([^a-z])|([{}])|[\r\n]+|(.)",
    re.IGNORECASE | re.DOTALL,
)

# Groups whose text is metadata, not body
_DESTINATIONS = frozenset({
    "fonttbl", "colortbl", "expandedcolortbl", "stylesheet", "info", "pict",
    "header", "footer", "headerl", "headerr", "footerl", "footerr",
    "themedata", "colorschememapping", "latentstyles", "datastore",
    "xmlnstbl", "listtable", "listoverridetable", "rsidtbl", "generator",
    "object", "fldinst", "filetbl", "revtbl", "operator", "author",
})

_SPECIAL = {
    "par": "\n",
    "line": "\n",
    "sect": "\n\n",
    "page": "\n\n",
    "tab": "\t",
    "emdash": "\u2014",
    "endash": "\u2013",
    "emspace": "\u2003",
    "enspace": "\u2002",
    "bullet": "\u2022",
    "lquote": "\u2018",
    "rquote": "\u2019",
    "ldblquote": "\u201c",
    "rdblquote": "\u201d",
}


def is_rtf(text: str) -> bool:
    return text.lstrip().startswith(_RTF_PREFIX)


def _escape_char(ch: str) -> str:
    if ch in "\\{}":
        return "\\" + ch
    if ch == "\n":
        return "\\par\n"
    if ch == "\t":
        return "\\tab "
    code = ord(ch)
    if code < 128:
        return ch
    if code > 0xFFFF:
        # RTF \u takes signed 16-bit values: emit a surrogate pair
        pair = ch.encode("utf-16-le")
        hi = int.from_bytes(pair[0:2], "little")
        lo = int.from_bytes(pair[2:4], "little")
        return _unicode_word(hi) + _unicode_word(lo)
    return _unicode_word(code)


def _unicode_word(code: int) -> str:
    signed = code - 0x10000 if code > 0x7FFF else code
    return f"\\u{signed}?"


def plain_to_rtf(text: str) -> str:
    """Wrap plain *text* into a minimal RTF document."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _HEADER + "".join(_escape_char(ch) for ch in text) + "}"


def rtf_to_plain(markup: str) -> str:
    """Return the readable text of an RTF document.

    Non-RTF input is returned unchanged, so callers can apply this to any
    note body regardless of its format.
    """
    if not is_rtf(markup):
        return markup

    stack: list[tuple[int, bool]] = []
    ignorable = False
    uc_skip = 1
    cur_skip = 0
    out: list[str] = []

    for m in _TOKEN_RE.finditer(markup):
        word, arg, hexcode, symbol, brace, char = m.groups()
        if brace:
            cur_skip = 0
            if brace == "{":
                stack.append((uc_skip, ignorable))
            elif stack:
                uc_skip, ignorable = stack.pop()
        elif symbol:
            cur_skip = 0
            if symbol == "*":
                ignorable = True
            elif ignorable:
                continue
            elif symbol == "~":
                out.append("\u00a0")
            elif symbol in "\\{}":
                out.append(symbol)
            elif symbol in "\r\n":
                out.append("\n")
        elif word:
            cur_skip = 0
            word = word.lower()
            if word in _DESTINATIONS:
                ignorable = True
            elif ignorable:
                continue
            elif word in _SPECIAL:
                out.append(_SPECIAL[word])
            elif word == "uc" and arg is not None:
                uc_skip = int(arg)
            elif word == "u" and arg is not None:
                code = int(arg)
                if code < 0:
                    code += 0x10000
                out.append(chr(code))
                cur_skip = uc_skip
        elif hexcode:
            if cur_skip > 0:
                cur_skip -= 1
            elif not ignorable:
                out.append(bytes.fromhex(hexcode).decode("cp1252", errors="replace"))
        elif char:
            if cur_skip > 0:
                cur_skip -= 1
            elif not ignorable:
                out.append(char)

    # Recombine surrogate pairs emitted by \u escapes
    return "".join(out).encode("utf-16", "surrogatepass").decode("utf-16", errors="replace")
