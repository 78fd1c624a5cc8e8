"""Convert generated Markdown into Telegram's legacy Markdown dialect.

Telegram's ``parse_mode="Markdown"`` understands ``*bold*``, ``_italic_`` and
fenced code, but chokes on the GitHub-flavoured forms models tend to emit.
Fenced code is protected first so nothing inside it is rewritten; pipe tables
are promoted to code blocks so they render monospaced.
"""

from __future__ import annotations

import re
import uuid

MAX_MESSAGE_LEN = 4000  # Telegram hard limit is 4096

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_TABLE_ROW_RE = re.compile(r"^\|.*\|[ \t]*$")

_INLINE_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\*\*(.*?)\*\*"), r"*\1*"),
    (re.compile(r"__(.*?)__"), r"_\1_"),
    (re.compile(r"~~(.*?)~~"), r"\1"),
]


def _new_token(text: str) -> str:
    """Placeholder prefix that does not occur anywhere in ``text``."""
    while True:
        token = f"\x00CODEBLOCK-{uuid.uuid4().hex}-"
        if token not in text:
            return token


def _protect_code_blocks(text: str, token: str) -> tuple[str, list[str]]:
    blocks: list[str] = []

    def _stash(match: re.Match[str]) -> str:
        blocks.append(match.group(0))
        return f"{token}{len(blocks) - 1}\x00"

    return _CODE_BLOCK_RE.sub(_stash, text), blocks


def _wrap_tables(text: str) -> str:
    lines = text.split("\n")
    out: list[str] = []
    run: list[str] = []

    def _flush() -> None:
        if run:
            out.extend(["```", *run, "```"])
            run.clear()

    for line in lines:
        if _TABLE_ROW_RE.match(line):
            run.append(line)
            continue
        _flush()
        out.append(line)
    _flush()
    return "\n".join(out)


def _restore_code_blocks(text: str, blocks: list[str], token: str) -> str:
    def _unstash(match: re.Match[str]) -> str:
        index = int(match.group(1))
        return blocks[index] if index < len(blocks) else match.group(0)

    return re.sub(re.escape(token) + r"(\d+)\x00", _unstash, text)


def sanitize(text: str) -> str:
    """Rewrite ``text`` so Telegram's Markdown parser accepts it.

    Code fences pass through byte-for-byte. Bold (``**x**``) and underline
    (``__x__``) markers are narrowed to Telegram's single-character forms and
    strike-through markers are dropped.
    """
    if not text:
        return text

    token = _new_token(text)
    protected, blocks = _protect_code_blocks(text, token)
    protected = _wrap_tables(protected)
    for pattern, replacement in _INLINE_RULES:
        protected = pattern.sub(replacement, protected)
    return _restore_code_blocks(protected, blocks, token)


def split_message(content: str, max_len: int = MAX_MESSAGE_LEN) -> list[str]:
    """Split content into chunks within max_len, preferring paragraph and line breaks."""
    if not content:
        return []
    if len(content) <= max_len:
        return [content]
    chunks: list[str] = []
    while content:
        if len(content) <= max_len:
            chunks.append(content)
            break
        cut = content[:max_len]
        pos = cut.rfind("\n\n")
        if pos <= 0:
            pos = cut.rfind("\n")
        if pos <= 0:
            pos = cut.rfind(" ")
        if pos <= 0:
            pos = max_len
        chunks.append(content[:pos])
        content = content[pos:].strip()
    return chunks
