"""Tests for vmlcompose.common utilities."""

import pytest

from vmlcompose.common import (
    coerce_attr_value,
    merge_cascaded,
    parse_json_map,
    parse_number,
    resolve_path_vars,
    to_camel_case,
    to_pascal_case,
)


class TestParseNumber:
    def test_integer(self):
        assert parse_number("12") == 12
        assert isinstance(parse_number("12"), int)

    def test_decimal(self):
        assert parse_number("-3.5") == -3.5

    def test_rejects_units_and_text(self):
        assert parse_number("12px") is None
        assert parse_number("1e3") is None
        assert parse_number("") is None
        assert parse_number(None) is None


class TestCoerceAttrValue:
    def test_booleans(self):
        assert coerce_attr_value("true") is True
        assert coerce_attr_value("false") is False

    def test_numbers(self):
        assert coerce_attr_value("42") == 42
        assert coerce_attr_value("0.25") == 0.25

    def test_strings_stay_strings(self):
        assert coerce_attr_value("True") == "True"
        assert coerce_attr_value("hello world") == "hello world"


class TestCaseConversion:
    def test_camel_case(self):
        assert to_camel_case("sample-rate-hz") == "sampleRateHz"
        assert to_camel_case("color") == "color"

    def test_pascal_case(self):
        assert to_pascal_case("progress-bar") == "ProgressBar"
        assert to_pascal_case("title") == "Title"


class TestParseJsonMap:
    def test_object(self):
        assert parse_json_map('{"color": "red", "size": 2}', "styles") == {
            "color": "red", "size": 2,
        }

    def test_absent(self):
        assert parse_json_map(None, "styles") is None
        assert parse_json_map("", "styles") is None

    def test_malformed_raises(self):
        with pytest.raises(ValueError, match="styles: malformed JSON"):
            parse_json_map("{color: red}", "styles")

    def test_non_object_raises(self):
        with pytest.raises(ValueError, match="expected a JSON object"):
            parse_json_map("[1, 2]", "props")


class TestMergeCascaded:
    def test_child_wins_key_by_key(self):
        parent = {"color": "red", "font": "Inter"}
        child = {"color": "blue"}
        assert merge_cascaded(parent, child) == {"color": "blue", "font": "Inter"}

    def test_merge_is_shallow(self):
        parent = {"box": {"x": 1, "y": 2}}
        child = {"box": {"x": 5}}
        assert merge_cascaded(parent, child) == {"box": {"x": 5}}

    def test_either_side_missing(self):
        assert merge_cascaded(None, {"a": 1}) == {"a": 1}
        assert merge_cascaded({"a": 1}, None) == {"a": 1}
        assert merge_cascaded(None, None) is None

    def test_does_not_mutate_inputs(self):
        parent = {"a": 1}
        merged = merge_cascaded(parent, {"b": 2})
        merged["c"] = 3
        assert parent == {"a": 1}


class TestResolvePathVars:
    def test_single_var(self):
        paths = {"vml": "/data/vml"}
        assert resolve_path_vars("${vml}/intro.vml", paths) == "/data/vml/intro.vml"

    def test_no_vars(self):
        assert resolve_path_vars("/abs/path.vml", {}) == "/abs/path.vml"

    def test_unknown_var_raises(self):
        with pytest.raises(ValueError, match="Unknown path variable"):
            resolve_path_vars("${missing}/x.vml", {})
