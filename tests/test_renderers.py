from datetime import date

import pytest

from folio.content import Document
from folio.layouts import Layout
from folio.protocols import BodyRenderer
from folio.renderers import (
    BodyRendererRegistry,
    HTMLRenderer,
    MarkdownRenderer,
    PlainTextRenderer,
    Renderer,
    _generate_heading_id,
)


def make_document(
    body: str,
    metadata: dict | None = None,
    source_type: str = "html",
    path: str = "hello.html",
) -> Document:
    return Document(source_path=path, raw_text=body, source_type=source_type).with_output(
        metadata or {}, "hello/index.html"
    ).with_parsed(metadata or {}, body)


def test_title_and_content_substitution():
    doc = make_document("World", {"layout": "post", "title": "Hello"})
    chain = (Layout(name="post", template="<h1>{{title}}</h1>{{content}}"),)
    assert Renderer().render(doc, chain) == "<h1>Hello</h1>World"


def test_chain_wraps_innermost_first():
    doc = make_document("body", {"title": "T"})
    chain = (
        Layout(name="post", template="<article>{{ content }}</article>", parent="base"),
        Layout(name="base", template="<html><title>{{ title }}</title>{{ content }}</html>\n"),
    )
    output = Renderer().render(doc, chain)
    assert output == "<html><title>T</title><article>body</article></html>\n"


def test_rendering_is_idempotent():
    doc = make_document("# Heading\n\nText with `code`.\n", {"title": "T"}, source_type="markdown")
    chain = (Layout(name="default", template="<main>{{ content }}</main>"),)
    renderer = Renderer()
    first = renderer.render(doc, chain)
    second = renderer.render(doc, chain)
    assert first == second
    assert first == Renderer().render(doc, chain)


def test_unresolved_placeholder_is_marked_and_reported():
    doc = make_document("body", {"title": "T"})
    chain = (Layout(name="post", template="{{ title }} by {{ author }} {{ missing.deep }}{{ content }}"),)
    result = Renderer().render_with_report(doc, chain)
    assert result.output == "T by [[unresolved:author]] [[unresolved:missing]]body"
    assert result.unresolved == ("author", "missing")


def test_layout_defaults_fill_missing_metadata():
    doc = make_document("body", {"title": "Doc"})
    chain = (
        Layout(name="post", template="{{ author }}/{{ title }}:{{ content }}", defaults={"author": "Inner"}),
        Layout(name="base", template="[{{ content }}|{{ author }}]", defaults={"author": "Outer", "title": "Base"}),
    )
    result = Renderer().render_with_report(doc, chain)
    assert result.output == "[Inner/Doc:body|Inner]"
    assert result.unresolved == ()


def test_metadata_is_escaped_but_content_is_not():
    doc = make_document("<em>raw</em>", {"title": "A & B"})
    chain = (Layout(name="post", template="<h1>{{ title }}</h1>{{ content }}"),)
    assert Renderer().render(doc, chain) == "<h1>A &amp; B</h1><em>raw</em>"


def test_page_site_and_data_are_available():
    doc = make_document("x", {"title": "T", "date": date(2018, 2, 10)})
    chain = (
        Layout(
            name="post",
            template="{{ site.title }}|{{ data.nav[0] }}|{{ page.url }}|{{ page.title }}|{{ date }}",
        ),
    )
    renderer = Renderer(site={"title": "Blog"}, data={"nav": ["home"]})
    assert renderer.render(doc, chain) == "Blog|home|/hello/|T|2018-02-10"


def test_render_requires_parsed_document():
    doc = Document(source_path="a.md", raw_text="x", source_type="markdown")
    with pytest.raises(ValueError):
        Renderer().render(doc, (Layout(name="default", template="{{ content }}"),))


def test_render_string_exposes_url_for():
    doc = make_document("x")
    renderer = Renderer(site={"title": "Blog"})
    out = renderer.render_string("{{ site.title }} {{ url_for(doc) }} {{ url_for('a/b') }}", {"doc": doc})
    assert out == "Blog /hello/ /a/b"


def test_markdown_renderer_adds_heading_ids_and_highlights_code():
    html = MarkdownRenderer().render("# Intro\n\n## Intro\n\n```python\nx = 1\n```\n")
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h2 id="intro-1">Intro</h2>' in html
    assert 'class="highlight"' in html


def test_markdown_renderer_escapes_unknown_language():
    html = MarkdownRenderer().render("```nosuchlang\n<b>\n```\n")
    assert '<code class="language-nosuchlang">&lt;b&gt;' in html


def test_plain_text_and_html_renderers():
    assert PlainTextRenderer().render("a < b") == "a &lt; b"
    assert HTMLRenderer().render("<p>x</p>") == "<p>x</p>"


def test_registry_lookup_and_extension():
    registry = BodyRendererRegistry()
    assert isinstance(registry.get("markdown"), MarkdownRenderer)
    with pytest.raises(KeyError):
        registry.get("rst")

    class Shout:
        source_type = "shout"

        def render(self, body):
            return body.upper()

    assert isinstance(Shout(), BodyRenderer)
    registry.register(Shout())
    doc = make_document("quiet", source_type="shout")
    renderer = Renderer(body_renderers=registry)
    assert renderer.render(doc, (Layout(name="default", template="{{ content }}"),)) == "QUIET"


def test_generate_heading_id():
    assert _generate_heading_id("Hello, World!") == "hello-world"
    assert _generate_heading_id("<code>x</code> y") == "x-y"
