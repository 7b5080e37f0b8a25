"""Tests for the config store and its two parsers."""

import sys

import pytest

mod = sys.modules["ai_cli"]

COMMENTED = """// project config
{
  // schema version
  "version": "1.0.0",
  "ides": ["claude"], // trailing comment
  /* block
     comment */
  "plugins": [
    "core",
    "lang-python", // trailing comma below
  ],
}
"""


def write_config(root, text):
    path = mod.config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestParsers:
    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_parses_commented_document(self, name):
        data = mod.select_parser(name).parse(COMMENTED)
        assert data["version"] == "1.0.0"
        assert data["plugins"] == ["core", "lang-python"]
        assert data["ides"] == ["claude"]

    def test_both_parsers_agree(self):
        assert mod.PARSERS["json5"].parse(COMMENTED) == mod.PARSERS["lines"].parse(COMMENTED)

    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_comment_markers_inside_strings_survive(self, name):
        text = '{"version": "1.0.0", "plugins": ["a,]"], "url": "https://x.test/*y*/"}'
        data = mod.select_parser(name).parse(text)
        assert data["url"] == "https://x.test/*y*/"
        assert data["plugins"] == ["a,]"]

    def test_escaped_quote_in_string(self):
        text = '{"version": "1.0.0", "plugins": ["say \\"hi\\" // not a comment"]}'
        data = mod.PARSERS["lines"].parse(text)
        assert data["plugins"] == ['say "hi" // not a comment']

    def test_line_parser_rejects_garbage(self):
        with pytest.raises(ValueError):
            mod.PARSERS["lines"].parse("{ not json")

    def test_unterminated_block_comment(self):
        with pytest.raises(ValueError):
            mod.PARSERS["lines"].parse('{"version": "1.0.0" /* oops')

    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_quote_inside_comment(self, name):
        text = '{\n  // the "core plugin ships by default\n  "version": "1.0.0",\n  "plugins": ["core"] // trailing\n}\n'
        data = mod.select_parser(name).parse(text)
        assert data == {"version": "1.0.0", "plugins": ["core"]}

    def test_apostrophe_in_block_comment(self):
        text = '/* don\'t edit by hand */\n{"version": "1.0.0", "plugins": ["core",],}'
        assert mod.PARSERS["lines"].parse(text) == {"version": "1.0.0", "plugins": ["core"]}

    def test_unknown_parser_errors(self):
        with pytest.raises(mod.AiCliError):
            mod.select_parser("yaml")


class TestLoadConfig:
    def test_missing(self, project):
        with pytest.raises(mod.ConfigMissing):
            mod.load_config(project, mod.select_parser())

    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_loads_commented_document(self, project, name):
        write_config(project, COMMENTED)
        doc = mod.load_config(project, mod.select_parser(name))
        assert doc.version == "1.0.0"
        assert doc.plugins == ["core", "lang-python"]
        assert doc.ides == ["claude"]

    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_unparsable_is_corrupt(self, project, name):
        write_config(project, '{"version": "1.0.0", "plugins": [')
        with pytest.raises(mod.ConfigCorrupt):
            mod.load_config(project, mod.select_parser(name))

    def test_wrong_shape_is_corrupt(self, project):
        write_config(project, '{"version": "1.0.0", "plugins": "core"}')
        with pytest.raises(mod.ConfigCorrupt):
            mod.load_config(project, mod.select_parser())

    def test_missing_version_is_corrupt(self, project):
        write_config(project, '{"plugins": ["core"]}')
        with pytest.raises(mod.ConfigCorrupt):
            mod.load_config(project, mod.select_parser())

    def test_legacy_single_ide(self, project):
        write_config(project, '{"version": "1.0.0", "ide": "cursor", "plugins": ["core"]}')
        doc = mod.load_config(project, mod.select_parser())
        assert doc.ides == ["cursor"]
        assert "ide" not in doc.extra

    def test_duplicates_collapse(self, project):
        write_config(project, '{"version": "1.0.0", "plugins": ["core", "docs", "core"]}')
        doc = mod.load_config(project, mod.select_parser())
        assert doc.plugins == ["core", "docs"]


class TestSaveConfig:
    def test_version_before_plugins(self, project):
        mod.save_config(project, mod.ConfigDocument(ides=["claude"], plugins=["core"]))
        text = mod.config_path(project).read_text()
        assert text.index('"version"') < text.index('"ides"') < text.index('"plugins"')

    @pytest.mark.parametrize("name", ["json5", "lines"])
    def test_saved_document_loads_back(self, project, name):
        doc = mod.ConfigDocument(ides=["cursor"], plugins=["core", "docs"], extra={"team": "x"})
        mod.save_config(project, doc)
        assert mod.load_config(project, mod.select_parser(name)) == doc

    def test_new_file_gets_header(self, project):
        mod.save_config(project, mod.ConfigDocument(plugins=["core"]))
        assert mod.config_path(project).read_text().startswith(mod.CONFIG_HEADER)

    def test_keeps_comment_header(self, project):
        write_config(project, "// keep me\n// and me\n" + '{"version": "1.0.0", "plugins": []}\n')
        doc = mod.load_config(project, mod.select_parser())
        doc.add_plugin("core")
        mod.save_config(project, doc)

        text = mod.config_path(project).read_text()
        assert text.startswith("// keep me\n// and me\n{")
        assert mod.load_config(project, mod.select_parser()).plugins == ["core"]

    def test_no_temp_files_left(self, project):
        mod.save_config(project, mod.ConfigDocument(plugins=["core"]))
        mod.save_config(project, mod.ConfigDocument(plugins=["core", "docs"]))
        assert [p.name for p in mod.ai_dir(project).iterdir()] == [mod.CONFIG_NAME]

    def test_write_failure_keeps_previous(self, project, monkeypatch):
        mod.save_config(project, mod.ConfigDocument(plugins=["core"]))
        before = mod.config_path(project).read_text()

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(mod.os, "replace", boom)
        with pytest.raises(mod.IOFailure):
            mod.save_config(project, mod.ConfigDocument(plugins=["core", "docs"]))
        assert mod.config_path(project).read_text() == before
        assert [p.name for p in mod.ai_dir(project).iterdir()] == [mod.CONFIG_NAME]


class TestRegisterPlugin:
    def test_creates_document(self, project):
        doc = mod.register_plugin(project, "core", mod.select_parser())
        assert doc.plugins == ["core"]
        assert doc.version == mod.CONFIG_VERSION
        assert mod.config_path(project).exists()

    def test_idempotent(self, project):
        parser = mod.select_parser()
        mod.register_plugin(project, "core", parser)
        text = mod.config_path(project).read_text()
        mod.register_plugin(project, "core", parser)
        assert mod.config_path(project).read_text() == text
        assert mod.load_config(project, parser).plugins == ["core"]

    def test_appends(self, project):
        parser = mod.select_parser()
        mod.register_plugin(project, "core", parser)
        mod.register_plugin(project, "docs", parser)
        assert mod.load_config(project, parser).plugins == ["core", "docs"]


class TestConfigDocument:
    def test_add_plugin_reports_change(self):
        doc = mod.ConfigDocument()
        assert doc.add_plugin("core") is True
        assert doc.add_plugin("core") is False
        assert doc.plugins == ["core"]

    def test_add_ide(self):
        doc = mod.ConfigDocument()
        doc.add_ide("claude")
        doc.add_ide("claude")
        assert doc.ides == ["claude"]
