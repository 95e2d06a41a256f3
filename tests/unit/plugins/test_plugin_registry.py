"""Unit tests for the plugin registry and the bundled plugins."""

import logging
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest

from codesense.engine import AnalysisEngine
from codesense.plugins import EnginePlugin, PluginHandle, PluginRegistry
from codesense.plugins.complete_strings import CompleteStringsPlugin
from codesense.plugins.doc_comment import DocCommentPlugin


class LocalDocPlugin(EnginePlugin):
    name = "doc_comment"

    def install(self, engine: Any, options: Dict[str, Any]) -> None:
        pass


async def no_files(name: str) -> str:
    raise FileNotFoundError(name)


def engine_with(plugin: EnginePlugin, options=None) -> AnalysisEngine:
    return AnalysisEngine(
        file_reader=no_files,
        plugins={plugin.name: PluginHandle(plugin.name, plugin, options or {})},
    )


class TestPluginRegistry:
    def test_builtins_are_registered(self):
        registry = PluginRegistry()
        assert set(registry.builtins) == {"doc_comment", "complete_strings"}

    def test_installed_plugin_overrides_builtin(self):
        """An entry-point plugin wins over the bundled plugin of the same name."""
        entry_point = MagicMock()
        entry_point.name = "doc_comment"
        entry_point.load.return_value = LocalDocPlugin

        with patch("codesense.plugins.entry_points", return_value=[entry_point]):
            handle = PluginRegistry().resolve("doc_comment")

        assert isinstance(handle.plugin, LocalDocPlugin)
        assert handle.origin == "installed"

    def test_broken_entry_point_falls_back_to_builtin(self):
        entry_point = MagicMock()
        entry_point.name = "doc_comment"
        entry_point.load.side_effect = ImportError("boom")

        with patch("codesense.plugins.entry_points", return_value=[entry_point]):
            handle = PluginRegistry().resolve("doc_comment")

        assert isinstance(handle.plugin, DocCommentPlugin)
        assert handle.origin == "builtin"

    def test_entry_point_must_be_engine_plugin(self):
        entry_point = MagicMock()
        entry_point.name = "other"
        entry_point.load.return_value = object

        with patch("codesense.plugins.entry_points", return_value=[entry_point]):
            assert PluginRegistry().resolve("other") is None

    def test_entry_points_are_selected_by_group(self):
        with patch("codesense.plugins.entry_points", return_value=[]) as mock_entry_points:
            handle = PluginRegistry().resolve("complete_strings")

        mock_entry_points.assert_called_with(group="codesense.plugins")
        assert handle.origin == "builtin"

    def test_unknown_name_resolves_to_none(self):
        assert PluginRegistry().resolve("does_not_exist") is None


class TestDocCommentPlugin:
    SOURCE = (
        "// Adds two numbers. Returns the sum.\n"
        "function add(a, b) { return a + b; }\n"
        "add(1, 2);\n"
    )

    @pytest.mark.asyncio
    async def test_type_result_gets_first_sentence(self):
        engine = engine_with(DocCommentPlugin())
        engine.add_file("math.js", self.SOURCE)
        offset = self.SOURCE.index("add(1")

        result = await engine.request(
            {"query": {"type": "type", "file": "math.js", "end": offset + 1}}
        )
        assert result["doc"] == "Adds two numbers."

    @pytest.mark.asyncio
    async def test_full_docs_option(self):
        engine = engine_with(DocCommentPlugin(), {"fullDocs": True})
        engine.add_file("math.js", self.SOURCE)
        offset = self.SOURCE.index("add(1")

        result = await engine.request(
            {"query": {"type": "definition", "file": "math.js", "end": offset}}
        )
        assert result["doc"] == "Adds two numbers. Returns the sum."
        assert result["file"] == "math.js"

    @pytest.mark.asyncio
    async def test_block_comment(self):
        source = "/**\n * Greets.\n */\nfunction hi() {}\nhi();\n"
        engine = engine_with(DocCommentPlugin())
        engine.add_file("a.js", source)

        result = await engine.request(
            {"query": {"type": "type", "file": "a.js", "end": source.rindex("hi")}}
        )
        assert result["doc"] == "Greets."


class TestCompleteStringsPlugin:
    SOURCE = 'mode("fast");\nmode("faster");\nmode("slow");\nmode("fa'

    @pytest.mark.asyncio
    async def test_completes_literals_inside_string(self):
        engine = engine_with(CompleteStringsPlugin())
        engine.add_file("m.js", self.SOURCE)

        result = await engine.request(
            {"query": {"type": "completions", "file": "m.js", "end": len(self.SOURCE)}}
        )
        assert result["completions"] == ["fast", "faster"]
        assert result["start"] == len(self.SOURCE) - 2

    @pytest.mark.asyncio
    async def test_max_length_option(self):
        engine = engine_with(CompleteStringsPlugin(), {"maxLength": 4})
        engine.add_file("m.js", self.SOURCE)

        result = await engine.request(
            {"query": {"type": "completions", "file": "m.js", "end": len(self.SOURCE)}}
        )
        assert result["completions"] == ["fast"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_length", ["long", None, True, [4]])
    async def test_invalid_max_length_uses_default(self, max_length, caplog):
        source = 'mode("a_sixteen_char_x");\nmode("a_fifteen_chars");\nmode("a_'
        with caplog.at_level(logging.WARNING, logger="codesense.plugins.complete_strings"):
            engine = engine_with(CompleteStringsPlugin(), {"maxLength": max_length})
        engine.add_file("m.js", source)

        result = await engine.request(
            {"query": {"type": "completions", "file": "m.js", "end": len(source)}}
        )
        assert result["completions"] == ["a_fifteen_chars"]
        assert "Ignoring invalid maxLength" in caplog.text

    @pytest.mark.asyncio
    async def test_outside_string_leaves_result_alone(self):
        source = "var fooBar = 1;\nfoo"
        engine = engine_with(CompleteStringsPlugin())
        engine.add_file("v.js", source)

        result = await engine.request(
            {"query": {"type": "completions", "file": "v.js", "end": len(source)}}
        )
        assert result["completions"] == ["fooBar"]
