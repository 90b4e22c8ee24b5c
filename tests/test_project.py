"""Tests for compiling a directory of modules and for the command line."""

import json
from pathlib import Path

import pytest

from intl_modules import CompileOptions, Project, Shape, ShapeError, main


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    buttons = tmp_path / "components" / "ActionButtons"
    buttons.mkdir(parents=True)
    (buttons / "buttons.intl.json").write_text(
        json.dumps({"en": {"save": {"default": "Save", "busy": "Saving…"}}}), encoding="utf-8"
    )
    (buttons / "fr.intl.yaml").write_text(
        "'@locale': fr\nsave:\n  default: Enregistrer\n", encoding="utf-8"
    )
    dialog = tmp_path / "components" / "Dialog"
    dialog.mkdir()
    (dialog / "dialog.intl.json5").write_text(
        "{en: {close: 'Close'}, fr: {close: 'Fermer'}}", encoding="utf-8"
    )
    return tmp_path


def _add_broken(root: Path) -> None:
    (root / "broken.intl.json").write_text('{"en": {"count": 3}}', encoding="utf-8")


class TestProject:
    def test_root_must_exist(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Project(tmp_path / "missing")

    def test_discover_is_sorted(self, project_root: Path) -> None:
        files = Project(project_root).discover()
        assert [f.name for f in files] == ["buttons.intl.json", "fr.intl.yaml", "dialog.intl.json5"]

    def test_compile_uses_relative_prefix(self, project_root: Path) -> None:
        project = Project(project_root)
        file = project_root / "components" / "ActionButtons" / "buttons.intl.json"

        ids, _ = project.compile(file)

        assert ids["save"]["default"] == "components/ActionButtons/buttons.intl.json:save.default"

    def test_dictionary_per_language(self, project_root: Path) -> None:
        project = Project(project_root)
        build = project.build()

        assert build.ok
        assert project.dictionary("fr", build) == {
            "components/ActionButtons/fr.intl.yaml:save.default": "Enregistrer",
            "components/Dialog/dialog.intl.json5:close": "Fermer",
        }
        assert len(project.dictionary("en", build)) == 3

    def test_failure_does_not_stop_other_modules(self, project_root: Path) -> None:
        _add_broken(project_root)

        build = Project(project_root).build()

        assert list(build.failures) == ["broken.intl.json"]
        assert isinstance(build.failures["broken.intl.json"], ShapeError)
        assert len(build.modules) == 3

    def test_undecodable_module_is_recorded(self, project_root: Path) -> None:
        (project_root / "latin1.intl.json").write_bytes(b'{"en": {"a": "\xff"}}')

        project = Project(project_root)
        build = project.build()

        assert list(build.failures) == ["latin1.intl.json"]
        assert len(build.modules) == 3
        assert project.dictionary("en", build)["components/Dialog/dialog.intl.json5:close"] == "Close"

    def test_unreadable_module_is_recorded(self, project_root: Path) -> None:
        project = Project(project_root)
        files = project.discover() + [project_root / "gone.intl.json"]

        build = project.build(files)

        assert isinstance(build.failures["gone.intl.json"], FileNotFoundError)
        assert len(build.modules) == 3

    def test_shortened_prefixes(self, project_root: Path) -> None:
        project = Project(project_root, options=CompileOptions(shorten=True))
        build = project.build()

        assert project.dictionary("en", build) == {
            "1:save.default": "Save",
            "1:save.busy": "Saving…",
            "3:close": "Close",
        }
        assert project.allocator.assigned["components/ActionButtons/fr.intl.yaml"] == "2"

    def test_messages_for_configured_language(self, project_root: Path) -> None:
        project = Project(project_root, options=CompileOptions(language="fr"))
        file = project_root / "components" / "Dialog" / "dialog.intl.json5"

        assert project.messages(file) == {"components/Dialog/dialog.intl.json5:close": "Fermer"}
        assert project.messages(file, "de") == {}

    def test_explicit_shape(self, project_root: Path) -> None:
        project = Project(project_root, options=CompileOptions(shape=Shape.SINGLE))
        build = project.build()
        assert set(build.failures) == {
            "components/ActionButtons/buttons.intl.json",
            "components/Dialog/dialog.intl.json5",
        }


class TestCommandLine:
    def test_ids(self, project_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        module = project_root / "components" / "Dialog" / "dialog.intl.json5"

        main(["ids", str(module), "--root", str(project_root)])

        assert json.loads(capsys.readouterr().out) == {"close": "components/Dialog/dialog.intl.json5:close"}

    def test_ids_as_js(self, project_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        module = project_root / "components" / "Dialog" / "dialog.intl.json5"

        main(["ids", str(module), "--root", str(project_root), "--format", "js"])

        out = capsys.readouterr().out.strip()
        assert out.startswith("/*locale*/ module.exports = {")
        assert out.endswith(";")

    def test_messages(self, project_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        module = project_root / "components" / "Dialog" / "dialog.intl.json5"

        main(["messages", str(module), "--root", str(project_root), "--lang", "fr"])

        assert json.loads(capsys.readouterr().out) == {"components/Dialog/dialog.intl.json5:close": "Fermer"}

    def test_invalid_module_exits(self, project_root: Path) -> None:
        _add_broken(project_root)
        with pytest.raises(SystemExit) as exc_info:
            main(["ids", str(project_root / "broken.intl.json"), "--root", str(project_root)])
        assert "en.count" in str(exc_info.value.code)

    def test_combine(self, project_root: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "dist"

        main(["combine", "--root", str(project_root), "--lang", "en", "--lang", "fr", "--output-dir", str(out_dir)])

        en = json.loads((out_dir / "en.json").read_text(encoding="utf-8"))
        fr = json.loads((out_dir / "fr.json").read_text(encoding="utf-8"))
        assert en["components/ActionButtons/buttons.intl.json:save.busy"] == "Saving…"
        assert fr == {
            "components/ActionButtons/fr.intl.yaml:save.default": "Enregistrer",
            "components/Dialog/dialog.intl.json5:close": "Fermer",
        }

    def test_combine_with_failures_writes_nothing(self, project_root: Path, tmp_path: Path) -> None:
        _add_broken(project_root)
        out_dir = tmp_path / "dist"

        with pytest.raises(SystemExit) as exc_info:
            main(["combine", "--root", str(project_root), "--lang", "en", "--output-dir", str(out_dir)])

        assert "broken.intl.json" in str(exc_info.value.code)
        assert not out_dir.exists()
