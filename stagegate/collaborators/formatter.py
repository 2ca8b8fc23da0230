"""Deterministic HTML rendering of approved drafts."""

from __future__ import annotations

import re
from html import escape

from .base import Draft, RenderedArtifact

_REQUIRED_TAGS = (
    ("<html", "html"),
    ("<head>", "head"),
    ("</head>", "closing head"),
    ("<body>", "body"),
    ("</body>", "closing body"),
    ("</html>", "closing html"),
)

_REQUIRED_META = (
    (re.compile(r'<meta charset="UTF-8">'), "charset meta tag"),
    (re.compile(r'<meta name="viewport"'), "viewport meta tag"),
    (re.compile(r'<meta name="description"'), "description meta tag"),
)


class HtmlFormatter:
    """Render a draft as a semantic HTML5 document."""

    def render(self, draft: Draft) -> RenderedArtifact:
        self._validate_draft(draft)
        html = self._generate(draft)
        self._validate_html(html)
        return RenderedArtifact(html=html, word_count=draft.word_count)

    @staticmethod
    def _validate_draft(draft: Draft) -> None:
        if not draft.title.strip():
            raise ValueError("Draft must have a valid title")
        if not draft.meta_description.strip():
            raise ValueError("Draft must have a valid meta description")
        if not draft.body_paragraphs:
            raise ValueError("Draft must have at least one body paragraph")

    @staticmethod
    def _validate_html(html: str) -> None:
        if "<!DOCTYPE html>" not in html:
            raise ValueError("HTML validation failed: Missing DOCTYPE declaration")
        for tag, name in _REQUIRED_TAGS:
            if tag not in html:
                raise ValueError(f"HTML validation failed: Missing required {name} tag")
        for pattern, name in _REQUIRED_META:
            if not pattern.search(html):
                raise ValueError(f"HTML validation failed: Missing required {name}")
        if not re.search(r"<title>.+</title>", html):
            raise ValueError("HTML validation failed: Missing or empty title tag")
        if html.index("<head>") > html.index("<body>"):
            raise ValueError("HTML validation failed: head must come before body")

    @staticmethod
    def _generate(draft: Draft) -> str:
        title = escape(draft.title)
        description = escape(draft.meta_description)
        body = "\n".join(f"    <p>{escape(p)}</p>" for p in draft.body_paragraphs)
        return (
            "<!DOCTYPE html>\n"
            '<html lang="en">\n'
            "<head>\n"
            '  <meta charset="UTF-8">\n'
            '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
            f'  <meta name="description" content="{description}">\n'
            f"  <title>{title}</title>\n"
            "</head>\n"
            "<body>\n"
            "  <article>\n"
            f"    <h1>{title}</h1>\n"
            f"{body}\n"
            "  </article>\n"
            "</body>\n"
            "</html>"
        )
