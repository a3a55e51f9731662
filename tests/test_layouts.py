from datetime import date
from pathlib import Path

import pytest

from folio.assembler import SiteAssembler
from folio.config import SiteConfig
from folio.content import Document
from folio.errors import (
    ConfigurationError,
    CyclicLayoutError,
    LayoutNotFoundError,
    MalformedMetadataError,
)
from folio.layouts import Layout, LayoutRegistry, layout_name_for


def write_layouts(tmp_path: Path, layouts: dict[str, str]) -> Path:
    source = tmp_path / "src"
    layout_dir = source / "_layouts"
    layout_dir.mkdir(parents=True)
    for filename, text in layouts.items():
        path = layout_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return source


def parsed(path: str, metadata: dict | None = None, body: str = "") -> Document:
    return Document(source_path=path, raw_text=body, source_type="markdown").with_parsed(
        metadata or {}, body
    )


def test_layout_from_text_reads_parent_and_defaults():
    layout = Layout.from_text("post", "---\nlayout: base\nauthor: Anon\n---\n<article>{{ content }}</article>")
    assert layout.parent == "base"
    assert layout.defaults == {"author": "Anon"}
    assert layout.template == "<article>{{ content }}</article>"
    assert layout.source_text.startswith("---\nlayout: base")


def test_layout_name_for():
    assert layout_name_for(Path("post.html")) == "post"
    assert layout_name_for(Path("post.html.jinja")) == "post"
    assert layout_name_for(Path("blog/entry.html")) == "blog/entry"


def test_registry_resolves_chain_innermost_first(tmp_path):
    source = write_layouts(
        tmp_path,
        {
            "base.html": "<html>{{ content }}</html>",
            "default.html": "---\nlayout: base\n---\n<main>{{ content }}</main>",
            "post.html": "---\nlayout: default\n---\n<article>{{ content }}</article>",
        },
    )
    registry = LayoutRegistry.load(source)
    chain = registry.resolve_chain("post")
    assert [layout.name for layout in chain] == ["post", "default", "base"]
    assert registry.resolve_chain(None) == registry.resolve_chain("default")
    assert "post" in registry
    assert registry.names() == ["base", "default", "post"]


def test_registry_provides_passthrough_default(tmp_path):
    source = tmp_path / "src"
    source.mkdir()
    registry = LayoutRegistry.load(source)
    (default,) = registry.resolve_chain("default")
    assert default.builtin
    assert default.template == "{{ content }}"


def test_cycle_is_rejected(tmp_path):
    source = write_layouts(
        tmp_path,
        {
            "a.html": "---\nlayout: b\n---\nA{{ content }}",
            "b.html": "---\nlayout: a\n---\nB{{ content }}",
        },
    )
    with pytest.raises(CyclicLayoutError) as excinfo:
        LayoutRegistry.load(source)
    assert excinfo.value.chain == ["a", "b", "a"]
    assert isinstance(excinfo.value, ConfigurationError)


def test_self_reference_is_a_cycle():
    layouts = {"loop": Layout(name="loop", template="{{ content }}", parent="loop")}
    with pytest.raises(CyclicLayoutError):
        LayoutRegistry(layouts)


def test_long_cycle_terminates():
    layouts = {
        f"l{i}": Layout(name=f"l{i}", template="{{ content }}", parent=f"l{(i + 1) % 50}")
        for i in range(50)
    }
    with pytest.raises(CyclicLayoutError) as excinfo:
        LayoutRegistry(layouts)
    assert len(excinfo.value.chain) == 51


def test_missing_parent_is_a_configuration_error(tmp_path):
    source = write_layouts(tmp_path, {"post.html": "---\nlayout: nowhere\n---\n{{ content }}"})
    with pytest.raises(ConfigurationError, match="nowhere"):
        LayoutRegistry.load(source)


def test_malformed_layout_header_is_a_configuration_error(tmp_path):
    source = write_layouts(tmp_path, {"post.html": "---\nlayout: base\n{{ content }}"})
    with pytest.raises(ConfigurationError):
        LayoutRegistry.load(source)


def test_duplicate_layout_names_are_rejected(tmp_path):
    source = write_layouts(tmp_path, {"post.html": "a", "post.jinja": "b"})
    with pytest.raises(ConfigurationError, match="Duplicate"):
        LayoutRegistry.load(source)


def test_unknown_layout_name_is_not_found(tmp_path):
    registry = LayoutRegistry({})
    with pytest.raises(LayoutNotFoundError):
        registry.resolve_chain("missing")
    with pytest.raises(LayoutNotFoundError):
        registry.get("missing")


def make_assembler(config: SiteConfig | None = None) -> SiteAssembler:
    layouts = {
        "post": Layout(name="post", template="<h1>{{ title }}</h1>{{ content }}"),
    }
    return SiteAssembler(config or SiteConfig(), LayoutRegistry(layouts))


def test_assemble_fills_derived_metadata_and_output_path():
    assembler = make_assembler()
    doc = assembler.assemble(parsed("posts/2018-02-10-linq-perf.md", {"layout": "post"}, "# LINQ\n"))
    assert doc.metadata["title"] == "LINQ"
    assert doc.metadata["date"] == date(2018, 2, 10)
    assert doc.metadata["slug"] == "linq-perf"
    assert doc.output_path == "posts/2018/02/10/linq-perf/index.html"
    assert doc.url == "/posts/2018/02/10/linq-perf/"
    assert [layout.name for layout in assembler.chain_for(doc)] == ["post"]


def test_output_paths_for_undated_index_and_permalink():
    assembler = make_assembler()
    assert assembler.assemble(parsed("about.md")).output_path == "about/index.html"
    assert assembler.assemble(parsed("docs/index.md")).output_path == "docs/index.html"
    assert assembler.assemble(parsed("index.html")).output_path == "index.html"
    custom = assembler.assemble(parsed("x.md", {"permalink": "/feeds/atom.xml"}))
    assert custom.output_path == "feeds/atom.xml"
    pretty = assembler.assemble(parsed("x.md", {"permalink": "/hello/"}))
    assert pretty.output_path == "hello/index.html"


def test_output_path_outside_root_is_malformed():
    assembler = make_assembler()
    with pytest.raises(MalformedMetadataError):
        assembler.assemble(parsed("x.md", {"permalink": "../../etc/passwd"}))


@pytest.mark.parametrize("permalink", [".folio-manifest.json", "/./.folio-manifest.json"])
def test_output_path_cannot_replace_build_manifest(permalink):
    assembler = make_assembler()
    with pytest.raises(MalformedMetadataError, match="reserved"):
        assembler.assemble(parsed("x.md", {"permalink": permalink}))


def test_configured_permalink_patterns():
    config = SiteConfig(permalink="{folder}/{slug}.html", dated_permalink="{year}/{slug}.html")
    assembler = make_assembler(config)
    assert assembler.assemble(parsed("pages/About Us.md")).output_path == "pages/about-us.html"
    dated = assembler.assemble(parsed("posts/x.md", {"date": "2018-01-01", "slug": "new-year"}))
    assert dated.output_path == "2018/new-year.html"


def test_default_layout_is_used_without_explicit_layout():
    assembler = make_assembler()
    doc = assembler.assemble(parsed("about.md"))
    (layout,) = assembler.chain_for(doc)
    assert layout.name == "default"


def test_unknown_document_layout_is_not_found():
    assembler = make_assembler()
    doc = assembler.assemble(parsed("about.md", {"layout": "missing"}))
    with pytest.raises(LayoutNotFoundError):
        assembler.chain_for(doc)


def test_order_is_descending_with_path_tie_break():
    assembler = make_assembler()
    docs = [
        assembler.assemble(parsed("b.md", {"date": "2018-01-01"})),
        assembler.assemble(parsed("c.md", {"date": "2018-02-10"})),
        assembler.assemble(parsed("a.md", {"date": "2018-01-01"})),
        assembler.assemble(parsed("undated.md")),
    ]
    ordered = assembler.order(docs)
    assert [d.source_path for d in ordered] == ["c.md", "a.md", "b.md", "undated.md"]
    by_title = assembler.order(docs, "title")
    assert [d.source_path for d in by_title] == ["undated.md", "c.md", "b.md", "a.md"]
