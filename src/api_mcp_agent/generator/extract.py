"""Pull code out of LLM responses whose formatting is not guaranteed."""

import re

LANGUAGE_ALIASES = {
    "typescript": ("typescript", "ts", "tsx"),
    "javascript": ("javascript", "js"),
    "json": ("json", "jsonc"),
    "markdown": ("markdown", "md"),
    "python": ("python", "py"),
    "yaml": ("yaml", "yml"),
}

_FENCE = re.compile(r"```([\w+-]*)[^\n]*\n(.*?)```", re.DOTALL)
_OUTER_FENCE = re.compile(r"\A```([\w+-]*)[^\n]*\n(.*)\n```\Z", re.DOTALL)


def extract_code(response: str, lang: str = "typescript", any_block: bool = True) -> str:
    """Extract code from a Markdown response.

    Prefers a block tagged with ``lang`` (or one of its aliases), then the first
    fenced block of any kind, then the raw text. ``any_block=False`` skips the
    middle step, for documents that legitimately embed other code blocks; such a
    document wrapped whole in one tagged fence is unwrapped as a unit.
    """
    tags = LANGUAGE_ALIASES.get(lang, (lang,))
    text = response.strip()

    if not any_block:
        outer = _OUTER_FENCE.match(text)
        if outer and outer.group(1).lower() in tags:
            return outer.group(2).strip()

    blocks = _FENCE.findall(text)
    for tag, body in blocks:
        if tag.lower() in tags:
            return body.strip()
    if any_block and blocks:
        return blocks[0][1].strip()
    return text


def split_sections(markdown: str) -> dict[str, str]:
    """Split Markdown into ``{heading: body}`` by ``## `` headers outside code fences."""
    sections: dict[str, str] = {}
    heading = None
    body: list[str] = []
    in_fence = False

    for line in markdown.splitlines():
        if line.lstrip().startswith("```"):
            if in_fence and line.strip() == "```":
                in_fence = False
            elif not in_fence:
                in_fence = True
        if not in_fence and line.startswith("## "):
            if heading is not None:
                sections[heading] = "\n".join(body).strip()
            heading = line[3:].strip()
            body = []
        elif heading is not None:
            body.append(line)

    if heading is not None:
        sections[heading] = "\n".join(body).strip()
    return sections
