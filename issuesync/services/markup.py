"""GitHub markdown to Jira wiki markup"""

import re

_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_CODE_BLOCK_RE = re.compile(r"`{3}([a-z-]+)?(.*?)`{3}", re.DOTALL)
_BOLD_RE = re.compile(r"\*{2}(.*?)\*{2}", re.DOTALL)

# Fence languages Jira does not know about
_BARE_CODE_LANGUAGES = {"", "release-note"}


def _code_block(match: re.Match) -> str:
    lang = match.group(1) or ""
    tag = "{code}" if lang in _BARE_CODE_LANGUAGES else f"{{code:{lang}}}"
    return f"{tag}{match.group(2)}{{code}}"


def to_jira(markdown: str) -> str:
    """Convert the subset of markdown that commonly appears in issues.

    Handles HTML comments (dropped, e.g. issue templates), fenced code blocks and
    bold text. Everything else passes through unchanged.
    """
    if not markdown:
        return ""
    out = _HTML_COMMENT_RE.sub("", markdown)
    out = _CODE_BLOCK_RE.sub(_code_block, out)
    out = _BOLD_RE.sub(r"*\1*", out)
    return out
