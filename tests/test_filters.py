"""Tests for exclude predicates."""

import re

from cdnflow.filters import PathFilter, build_exclude, build_path_filter


class TestBuildExclude:
    def test_none_excludes_nothing(self):
        exclude = build_exclude(None)
        assert exclude("index.html") is False

    def test_callable_is_used_as_is(self):
        def predicate(path):
            return path.startswith("private/")

        assert build_exclude(predicate) is predicate

    def test_compiled_pattern_is_searched(self):
        exclude = build_exclude(re.compile(r"\.html$"))
        assert exclude("index.html")
        assert exclude("sub\\page.html")
        assert not exclude("app.js")

    def test_single_glob_string(self):
        exclude = build_exclude("*.map")
        assert exclude("js/app.js.map")
        assert not exclude("js/app.js")

    def test_pattern_list_mixes_globs_and_regexes(self):
        exclude = build_exclude(["static/", r"re:^tmp-\d+\.js$"])
        assert exclude("static/logo.png")
        assert exclude("tmp-42.js")
        assert not exclude("tmp-x.js")
        assert not exclude("main.js")


class TestPathFilter:
    def test_empty_filter_is_falsy(self):
        assert not PathFilter()
        assert build_path_filter(["*.html"])

    def test_leading_dot_slash_is_ignored(self):
        exclude = build_path_filter(["./docs/*.md"])
        assert exclude("docs/readme.md")

    def test_blank_patterns_are_skipped(self):
        assert build_path_filter(["", "   "])("anything") is False
