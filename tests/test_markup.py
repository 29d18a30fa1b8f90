"""Tests for markup parsing into frozen Element trees."""

import pytest

from vmlcompose.markup import Element, MarkupError, load_markup, parse_markup


class TestParseMarkup:
    def test_tags_attributes_children(self):
        root = parse_markup('<vml id="demo"><scene id="a" title="A"/><scene id="b"/></vml>')
        assert root.tag == "vml"
        assert root.attributes == {"id": "demo"}
        assert [child.get("id") for child in root.children] == ["a", "b"]
        assert root.children[0].get("title") == "A"

    def test_text_content(self):
        root = parse_markup("<vml id='x'><cue id='c'><voice>Hello <b>there</b></voice></cue></vml>")
        voice = root.children[0].children[0]
        assert voice.text == "Hello there"

    def test_empty_attribute_reads_as_absent(self):
        el = parse_markup('<vml id="x" title=""/>')
        assert el.get("title") is None
        assert el.get("title", "fallback") == "fallback"

    def test_handler_prefix_survives(self):
        text = (
            '<vml id="x" xmlns:on="urn:vml:handlers" '
            'on:scene-start="log(event)"><scene id="a"/></vml>'
        )
        root = parse_markup(text)
        assert root.get("on:scene-start") == "log(event)"

    def test_namespaced_tags_lose_namespace(self):
        root = parse_markup('<vml xmlns="urn:vml" id="x"><scene id="a"/></vml>')
        assert root.tag == "vml"
        assert root.children[0].tag == "scene"

    def test_malformed_raises(self):
        with pytest.raises(MarkupError, match="Malformed markup"):
            parse_markup("<vml id='x'><scene></vml>")

    def test_markup_error_is_value_error(self):
        assert issubclass(MarkupError, ValueError)

    def test_elements_are_frozen(self):
        root = parse_markup('<vml id="x"/>')
        with pytest.raises(AttributeError):
            root.tag = "other"

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "demo.vml"
        path.write_text('<vml id="from-file"><scene id="a"/></vml>', encoding="utf-8")
        assert load_markup(path).get("id") == "from-file"


class TestElement:
    def test_child_elements_filters_by_tag(self):
        root = Element("scene", children=(Element("cue"), Element("layer"), Element("cue")))
        assert len(root.child_elements("cue")) == 2
        assert len(root.child_elements()) == 3

    def test_iter_is_preorder(self):
        tree = Element("a", children=(Element("b", children=(Element("c"),)), Element("d")))
        assert [el.tag for el in tree.iter()] == ["a", "b", "c", "d"]
