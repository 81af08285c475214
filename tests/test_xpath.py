"""Tests for XPath parsing helpers."""

import pytest

from campaign_client.xpath import XPath, XPathElement


def test_path_kinds():
    assert XPath("").is_empty()
    assert XPath(None).is_empty()
    assert XPath("/").is_root_path()
    assert XPath("/@email").is_absolute()
    assert not XPath("country/@isoA3").is_absolute()
    assert XPath(".").is_self()


def test_elements():
    elements = XPath("../country/@isoA3").get_elements()
    assert [e.as_string() for e in elements] == ["..", "country", "@isoA3"]
    assert elements[0].is_parent()
    assert elements[2].is_attribute()
    assert not elements[1].is_attribute()
    assert XPath("./a").get_elements()[0].is_self()


def test_empty_segments_are_ignored():
    assert [e.as_string() for e in XPath("a//b/").get_elements()] == ["a", "b"]


def test_relative_path():
    assert XPath("/country/@isoA3").get_relative_path() == "country/@isoA3"
    assert XPath("country").get_relative_path() == XPath("country")


def test_parent_and_leaf():
    assert XPath("/country/@isoA3").parent() == "/country"
    assert XPath("country/@isoA3").parent() == "country"
    assert XPath("@email").parent().is_empty()
    assert XPath("/@email").parent().is_root_path()
    assert XPath("country/@isoA3").leaf() == "@isoA3"


def test_equality_and_hash():
    assert XPath("a/b") == XPath(" a/b ")
    assert len({XPath("a"), XPath("a")}) == 1


def test_empty_element():
    with pytest.raises(ValueError):
        XPathElement("")
