"""Rendering for Folio.

Rendering happens in two steps. A body renderer turns the document body
into an HTML fragment according to its source type; the layout renderer
then places that fragment into the document's resolved layout chain with
Jinja2, innermost layout first.

Key classes:
- MarkdownRenderer, HTMLRenderer, PlainTextRenderer: Body renderers.
- BodyRendererRegistry: Maps source types to body renderers.
- Renderer: Wraps bodies in layout chains and reports unresolved placeholders.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping, Sequence
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import mistune
from jinja2 import ChainableUndefined, Environment, Template, select_autoescape
from markupsafe import Markup, escape

if TYPE_CHECKING:
    from .content import Document
    from .layouts import Layout
    from .protocols import BodyRenderer

UNRESOLVED_MARKER = "[[unresolved:{name}]]"

_unresolved_sink: ContextVar[list[str] | None] = ContextVar("_unresolved_sink", default=None)


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown HTML renderer with heading anchors and Pygments code blocks."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text) or "section"
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        if info:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            language = info.split()[0]
            try:
                lexer = get_lexer_by_name(language, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        lang_class = f' class="language-{escape(info.split()[0])}"' if info else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown bodies to HTML with mistune."""

    source_type = "markdown"

    def render(self, body: str) -> str:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(),
            plugins=["strikethrough", "footnotes", "table", "url"],
        )
        return markdown(body)


class HTMLRenderer:
    """Passes HTML bodies through unchanged."""

    source_type = "html"

    def render(self, body: str) -> str:
        return body


class PlainTextRenderer:
    """Escapes plain-text bodies so they display verbatim inside HTML."""

    source_type = "text"

    def render(self, body: str) -> str:
        return str(escape(body))


class BodyRendererRegistry:
    """Registry of body renderers keyed by source type.

    New source types can be supported by registering another renderer.
    """

    def __init__(self):
        self._renderers: dict[str, BodyRenderer] = {}
        self.register(MarkdownRenderer())
        self.register(HTMLRenderer())
        self.register(PlainTextRenderer())

    def register(self, renderer: BodyRenderer) -> None:
        self._renderers[renderer.source_type] = renderer

    def get(self, source_type: str) -> BodyRenderer:
        """Return the renderer for a source type.

        Raises:
            KeyError: If no renderer handles the source type.
        """
        try:
            return self._renderers[source_type]
        except KeyError:
            raise KeyError(f"No body renderer for source type {source_type!r}") from None


class UnresolvedUndefined(ChainableUndefined):
    """Undefined value that renders as a visible marker instead of blank.

    Each rendered marker is also recorded for the render in progress.
    """

    __slots__ = ()

    def __str__(self) -> str:
        name = self._undefined_name or "?"
        sink = _unresolved_sink.get()
        if sink is not None and name not in sink:
            sink.append(name)
        return UNRESOLVED_MARKER.format(name=name)


@dataclass(frozen=True)
class RenderResult:
    """Rendered output plus the placeholder names that had no value."""

    output: str
    unresolved: tuple[str, ...] = ()


class Renderer:
    """Renders documents through layout chains with Jinja2.

    Attributes:
        site: Values exposed to templates as ``site``.
        data: Values exposed to templates as ``data``.
        env: Jinja2 environment shared by all renders.
    """

    def __init__(
        self,
        site: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        body_renderers: BodyRendererRegistry | None = None,
    ):
        self.site = dict(site or {})
        self.data = dict(data or {})
        self.body_renderers = body_renderers or BodyRendererRegistry()
        self.env = Environment(
            autoescape=select_autoescape(["html", "xml"]),
            undefined=UnresolvedUndefined,
            keep_trailing_newline=True,
        )
        self.env.globals["url_for"] = _url_for
        self._templates: dict[str, Template] = {}
        self._lock = threading.Lock()

    def render(self, document: Document, chain: Sequence[Layout]) -> str:
        """Render a document through its resolved layout chain.

        Args:
            document: Parsed and assembled document.
            chain: Layouts, innermost first.

        Returns:
            The final output string.
        """
        return self.render_with_report(document, chain).output

    def render_with_report(self, document: Document, chain: Sequence[Layout]) -> RenderResult:
        """Render a document and report placeholders that had no value."""
        if document.body is None:
            raise ValueError(f"{document.source_path} has not been parsed")
        body_html = self.body_renderers.get(document.source_type).render(document.body)
        context = self._context(document, chain)
        sink: list[str] = []
        token = _unresolved_sink.set(sink)
        try:
            content = Markup(body_html)
            for layout in chain:
                rendered = self._template(layout.template).render(context, content=content)
                content = Markup(rendered)
        finally:
            _unresolved_sink.reset(token)
        return RenderResult(output=str(content), unresolved=tuple(sink))

    def render_string(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a template string with site and data available."""
        values = {"site": self.site, "data": self.data}
        values.update(context)
        return self._template(template).render(values)

    def _context(self, document: Document, chain: Sequence[Layout]) -> dict[str, Any]:
        context: dict[str, Any] = {}
        for layout in reversed(chain):
            context.update(layout.defaults)
        context.update(document.metadata)
        page = dict(context)
        page.update(
            url=document.url,
            source_path=document.source_path,
            output_path=document.output_path,
        )
        context.update(page=page, site=self.site, data=self.data)
        return context

    def _template(self, source: str) -> Template:
        with self._lock:
            template = self._templates.get(source)
            if template is None:
                template = self.env.from_string(source)
                self._templates[source] = template
        return template


def _url_for(target: Any) -> str:
    """Return the URL path for a document or a relative path."""
    url = getattr(target, "url", None)
    if isinstance(url, str) and url:
        return url
    if isinstance(target, Mapping) and target.get("url"):
        return str(target["url"])
    text = str(target)
    return text if text.startswith(("/", "http://", "https://", "//")) else f"/{text}"
