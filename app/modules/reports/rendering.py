"""
Markdown rendering for diagnostic and test reports.

Reports are markdown with a summary block such as::

    **Errors:** 2
    **Warnings:** 1

``render_markdown`` turns them into sanitised HTML for display and
``extract_report_stats`` reads the summary counts back.
"""

import re
from typing import Dict, Union

import bleach
from markdown import markdown as md

ALLOWED_TAGS = bleach.sanitizer.ALLOWED_TAGS | {
    "p",
    "pre",
    "code",
    "hr",
    "br",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
}

ALLOWED_ATTRIBUTES = {
    **bleach.sanitizer.ALLOWED_ATTRIBUTES,
    "a": ["href", "title", "rel"],
    "code": ["class"],
}

_ERRORS_RE = re.compile(r"Errors:\*\* (\d+)")
_WARNINGS_RE = re.compile(r"Warnings:\*\* (\d+)")


def render_markdown(text: str) -> str:
    if not text:
        return ""
    html = md(text, extensions=["fenced_code", "tables", "sane_lists"])
    return bleach.clean(html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def _count(pattern: re.Pattern, report: str) -> int:
    match = pattern.search(report or "")
    return int(match.group(1)) if match else 0


def extract_report_stats(report: str) -> Dict[str, Union[int, bool]]:
    error_count = _count(_ERRORS_RE, report)
    warning_count = _count(_WARNINGS_RE, report)
    return {
        "error_count": error_count,
        "warning_count": warning_count,
        "success": error_count == 0,
        "has_warnings": warning_count > 0,
    }
