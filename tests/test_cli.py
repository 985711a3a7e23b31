"""Tests for the analyze, compare and export command lines."""

import json
import shutil

import pytest
import yaml

requires_ffprobe = pytest.mark.skipif(
    shutil.which("ffprobe") is None, reason="ffprobe not on PATH",
)


def _item(name, ctime, sampler, seed, workflow=None):
    return {
        "file_path": f"/renders/{name}",
        "name": name,
        "size": 100,
        "duration": 2.0,
        "width": 640,
        "height": 360,
        "fps": 30,
        "__file_ctime_epoch": ctime,
        "__file_ctime_iso": "",
        "workflowNorm": json.dumps(workflow or {
            "nodes": [{"id": 3, "type": "KSampler", "widgets_values": [seed, sampler]}],
            "links": [],
        }),
        "widgetValues": {},
    }


@pytest.fixture
def items_file(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(json.dumps({"items": [
        _item("a.mp4", 1.0, "euler", 1),
        _item("b.mp4", 2.0, "dpmpp", 2),
        _item("c.mp4", 3.0, "dpmpp", 3),
    ]}))
    return str(path)


def _touch(tmp_path, *names):
    paths = []
    for name in names:
        p = tmp_path / name
        p.write_bytes(b"")
        paths.append(str(p))
    return paths


class TestCompareCli:
    def test_diff_view(self, items_file, capsys):
        from clipcollate.compare_cli import main

        main(["--items", items_file, "--sort", "ctime", "--asc"])
        out = capsys.readouterr().out
        assert "3 clips" in out
        assert "#1 a.mp4" in out
        assert "(baseline)" in out
        assert "+ dpmpp" in out and "- euler" in out
        # Seeds are hidden by default.
        assert "widgets_values[0]" not in out

    def test_table_view_with_search(self, items_file, capsys):
        from clipcollate.compare_cli import main

        main(["--items", items_file, "--view", "table", "--search", "euler", "--hide", ""])
        out = capsys.readouterr().out
        assert "1 clips" in out
        assert "KSampler #3.widgets_values[0]: 1" in out
        assert "b.mp4" not in out

    def test_node_types(self, items_file, capsys):
        from clipcollate.compare_cli import main

        main(["--items", items_file, "--node-types"])
        assert "[x] KSampler  files=3" in capsys.readouterr().out

    def test_label_keys(self, items_file, capsys):
        from clipcollate.compare_cli import main

        main(["--items", items_file, "--label-keys"])
        assert capsys.readouterr().out.splitlines() == ["KSampler #3.widgets_values[1]"]

    def test_allow_list_applies_to_items(self, tmp_path, capsys):
        from clipcollate.compare_cli import main

        path = tmp_path / "items.json"
        workflow = {"nodes": [{"id": 1, "type": "Note", "widgets_values": ["hi"]}], "links": []}
        path.write_text(json.dumps({"items": [_item("a.mp4", 1.0, "", 0, workflow=workflow)]}))

        main(["--items", str(path), "--label-keys"])
        assert capsys.readouterr().out.strip() == ""
        main(["--items", str(path), "--label-keys", "--no-filter"])
        assert capsys.readouterr().out.strip() == "Note #1.widgets_values[0]"

    def test_requires_input(self):
        from clipcollate.compare_cli import main

        with pytest.raises(SystemExit):
            main([])


class TestExportCli:
    def test_validate_grid(self, tmp_path, capsys):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "a.mp4", "b.mp4", "c.mp4")
        main([*clips, "--mode", "grid", "--grid-columns", "2", "--resolution", "1200x800", "--validate"])
        out = capsys.readouterr().out
        assert "Grid: 2x2 cells of 600x400 (1 empty)" in out
        assert "@ 0,400" in out
        assert "All paths verified." in out

    def test_validate_manifest(self, tmp_path, capsys):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "a.mp4", "b.mp4")
        manifest = tmp_path / "export.yaml"
        manifest.write_text(yaml.dump({
            "video": {"mode": "grid", "grid_columns": 2, "resolution": "320x180",
                      "per_cell_resolution": True, "labels": True},
            "paths": {"root": str(tmp_path)},
            "clips": ["${root}/a.mp4", {"path": "${root}/b.mp4"}],
        }))
        main(["--manifest", str(manifest), "--validate"])
        out = capsys.readouterr().out
        assert "Canvas: 640x180" in out
        assert "[1 label lines]" in out

    def test_missing_clip(self, tmp_path):
        from clipcollate.export_cli import main

        with pytest.raises(FileNotFoundError, match="Missing 1 clip file"):
            main([str(tmp_path / "gone.mp4"), "--validate"])

    def test_invalid_mode(self, tmp_path):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "a.mp4")
        with pytest.raises(SystemExit) as exc_info:
            main([*clips, "--mode", "mosaic", "--validate"])
        assert exc_info.value.code == 2

    def test_manifest_and_clips_conflict(self, tmp_path):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "a.mp4")
        with pytest.raises(SystemExit):
            main([*clips, "--manifest", "x.yaml"])

    def test_output_required(self, tmp_path):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "a.mp4")
        with pytest.raises(SystemExit):
            main(clips)

    def test_render_failure_exits(self, tmp_path):
        from clipcollate.export_cli import main

        clips = _touch(tmp_path, "empty.mp4")
        out = tmp_path / "final.mp4"
        with pytest.raises(SystemExit, match="Export failed: Clip 0"):
            main([*clips, "--output", str(out), "--workers", "1"])
        assert not out.exists()

    def test_render_sequential(self, source_video, tmp_path, capsys):
        from clipcollate.export_cli import main

        out = tmp_path / "final.mp4"
        main([str(source_video), "--resolution", "320x240", "--fps", "10", "--output", str(out)])
        assert out.exists()
        assert "Done:" in capsys.readouterr().out


class TestAnalyzeCli:
    @requires_ffprobe
    def test_writes_items(self, tagged_video, source_video, tmp_path, capsys):
        from clipcollate.analyze_cli import main

        out = tmp_path / "items.json"
        main([str(tmp_path), "--output", str(out)])
        assert "Analyzed 2 clips (1 with workflows)" in capsys.readouterr().out
        items = json.loads(out.read_text())["items"]
        tagged = next(i for i in items if i["name"] == "tagged.mp4")
        assert tagged["widgetValues"]["KSampler #3.widgets_values[3]"] == "euler"
        assert tagged["width"] == 320

    def test_no_files(self, tmp_path):
        from clipcollate.analyze_cli import main

        with pytest.raises(SystemExit):
            main([str(tmp_path)])

    def test_probe_missing_file(self, tmp_path, capsys):
        from clipcollate.analyze_cli import probe_main

        probe_main([str(tmp_path / "missing.mp4")])
        assert json.loads(capsys.readouterr().out) == {"width": 0, "height": 0, "fps": 0.0}
