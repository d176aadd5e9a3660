"""
Markdown parsing helpers: front-matter, headings, links and tags.

Used by the filesystem store to answer metadata queries, and by the chunker to strip the
front-matter block before sectioning.
"""

import re
from typing import Any, Dict, List

import yaml

from vaultsearch.core.logging import logger
from vaultsearch.models.document import Heading

# Front-matter must open on the very first line
FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$")
FENCE_RE = re.compile(r"^[ \t]*(```|~~~)")
WIKILINK_RE = re.compile(r"!?\[\[([^\]|#^]+)(?:[#^][^\]|]*)?(?:\|[^\]]*)?\]\]")
MDLINK_RE = re.compile(r"\[[^\]]*\]\(([^)\s]+\.md)(?:#[^)]*)?\)")
INLINE_TAG_RE = re.compile(r"(?<![\w#&/])#([^\W\d][\w/-]*|\d+[^\W\d][\w/-]*)")


def frontmatter_end(content: str) -> int:
    """Offset just past a leading front-matter block, 0 if there is none."""
    match = FRONTMATTER_RE.match(content)
    return match.end() if match else 0


def parse_frontmatter(content: str) -> Dict[str, Any]:
    """Parse the leading YAML front-matter; malformed blocks yield an empty mapping."""
    match = FRONTMATTER_RE.match(content)
    if not match or not match.group(1):
        return {}
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.debug("Ignoring malformed front-matter", error=str(e))
        return {}
    return data if isinstance(data, dict) else {}


def _iter_lines_outside_fences(content: str):
    """Yield (offset, line) for every line not inside a fenced code block."""
    offset = 0
    in_fence = False
    for line in content.splitlines(keepends=True):
        if FENCE_RE.match(line):
            in_fence = not in_fence
        elif not in_fence:
            yield offset, line.rstrip("\r\n")
        offset += len(line)


def parse_headings(content: str) -> List[Heading]:
    """ATX headings in document order, offsets into the raw content."""
    start = frontmatter_end(content)
    headings = []
    for offset, line in _iter_lines_outside_fences(content):
        if offset < start:
            continue
        match = HEADING_RE.match(line)
        if match:
            headings.append(
                Heading(text=match.group(2).strip(), offset=offset, level=len(match.group(1)))
            )
    return headings


def extract_link_targets(content: str) -> List[str]:
    """Raw wikilink and markdown-link targets, in order, without duplicates."""
    targets: List[str] = []
    body = content[frontmatter_end(content):]
    for _, line in _iter_lines_outside_fences(body):
        for match in WIKILINK_RE.finditer(line):
            target = match.group(1).strip()
            if target and target not in targets:
                targets.append(target)
        for match in MDLINK_RE.finditer(line):
            target = match.group(1).strip()
            if target and target not in targets:
                targets.append(target)
    return targets


def extract_tags(content: str) -> List[str]:
    """Inline ``#tags`` plus front-matter ``tags``/``tag``, lowercased, without '#'."""
    tags: List[str] = []

    def add(raw: str) -> None:
        tag = raw.strip().lstrip("#").lower()
        if tag and tag not in tags:
            tags.append(tag)

    frontmatter = parse_frontmatter(content)
    for key in ("tags", "tag"):
        value = frontmatter.get(key)
        if isinstance(value, list):
            for item in value:
                if isinstance(item, str):
                    add(item)
        elif isinstance(value, str):
            for item in re.split(r"[,\s]+", value):
                add(item)

    body = content[frontmatter_end(content):]
    for _, line in _iter_lines_outside_fences(body):
        heading = HEADING_RE.match(line)
        if heading:
            line = heading.group(2)
        for match in INLINE_TAG_RE.finditer(line):
            add(match.group(1))

    return tags
