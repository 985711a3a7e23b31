"""Tests for export config coercion, export manifests and filter configs."""

import json
import tempfile

import pytest
import yaml

from clipcollate.config import (
    DEFAULT_RESOLUTION,
    ExportConfig,
    coerce_bool,
    coerce_int,
    effective_canvas,
    expand_canvas,
    load_export_manifest,
    load_filter_config,
    load_workflow_values,
    pad_workflows,
    parse_label_fields,
    parse_resolution,
    save_filter_config,
    validate_clip_paths,
)
from clipcollate.errors import InvalidModeError
from clipcollate.graph import DEFAULT_ALLOWED_NODE_TYPES, FieldFilterConfig


def _write_manifest(content: dict) -> str:
    """Write a manifest dict to a temp YAML file, return path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(content, f)
    f.close()
    return f.name


def _minimal_manifest(**overrides):
    m = {
        "video": {"mode": "grid", "grid_columns": 2, "fps": 24},
        "clips": ["/tmp/a.mp4", "/tmp/b.mp4"],
    }
    m.update(overrides)
    return m


class TestFromFields:
    def test_defaults(self):
        config = ExportConfig.from_fields({})
        assert config.mode == "sequential"
        assert config.grid_columns == 2
        assert config.fps == 30
        assert config.resolution == (1920, 1080)
        assert config.letterbox is False
        assert config.labels is False
        assert config.label_fields == ()

    def test_all_fields(self):
        config = ExportConfig.from_fields({
            "mode": "grid",
            "gridColumns": "3",
            "resolution": "1280x720",
            "fps": "24",
            "showBlackBars": "true",
            "showFilename": "true",
            "labelFields": json.dumps(["KSampler #3.widgets_values[0]"]),
        })
        assert config.mode == "grid"
        assert config.columns == 3
        assert config.resolution == (1280, 720)
        assert config.fps == 24
        assert config.letterbox is True
        assert config.labels is True
        assert config.label_fields == ("KSampler #3.widgets_values[0]",)

    def test_junk_numbers_fall_back(self):
        config = ExportConfig.from_fields({
            "gridColumns": "many", "fps": "-5", "resolution": "wide",
        })
        assert config.grid_columns == 2
        assert config.fps == 30
        assert config.resolution == DEFAULT_RESOLUTION

    def test_infinite_numbers_fall_back(self):
        config = ExportConfig.from_fields({
            "mode": "grid", "gridColumns": "inf", "fps": "1e999", "resolution": [float("inf"), 720],
        })
        assert config.grid_columns == 2
        assert config.fps == 30
        assert config.resolution == DEFAULT_RESOLUTION

    def test_invalid_mode(self):
        with pytest.raises(InvalidModeError):
            ExportConfig.from_fields({"mode": "mosaic"})

    def test_sequential_uses_one_column(self):
        assert ExportConfig(mode="sequential", grid_columns=4).columns == 1


class TestCoercion:
    @pytest.mark.parametrize("value,expected", [
        ("4", 4), ("4.0", 4), (" 7 ", 7), ("", 2), (None, 2), ("x", 2), ("0", 2), (-1, 2),
        ("inf", 2), ("-inf", 2), ("1e999", 2), ("nan", 2), (float("inf"), 2),
    ])
    def test_coerce_int(self, value, expected):
        assert coerce_int(value, 2) == expected

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("TRUE", True), (True, True), ("1", False), ("false", False), (None, False),
    ])
    def test_coerce_bool(self, value, expected):
        assert coerce_bool(value) is expected

    def test_parse_resolution(self):
        assert parse_resolution("640x360") == (640, 360)
        assert parse_resolution([800, 600]) == (800, 600)
        assert parse_resolution("0x360") == DEFAULT_RESOLUTION
        assert parse_resolution("640") == DEFAULT_RESOLUTION

    def test_parse_label_fields(self):
        assert parse_label_fields('["a", 1]') == ["a", "1"]
        assert parse_label_fields("not json") == []
        assert parse_label_fields('{"a": 1}') == []
        assert parse_label_fields(["x"]) == ["x"]


class TestCanvas:
    def test_expand_canvas(self):
        assert expand_canvas((640, 360), 2, 3) == (1280, 720)
        assert expand_canvas((640, 360), 3, 3) == (1920, 360)

    def test_effective_canvas_per_cell_only_in_grid(self):
        grid = ExportConfig(mode="grid", grid_columns=2, resolution=(640, 360))
        seq = ExportConfig(mode="sequential", resolution=(640, 360))
        assert effective_canvas(grid, 4, per_cell=True) == (1280, 720)
        assert effective_canvas(grid, 4) == (640, 360)
        assert effective_canvas(seq, 4, per_cell=True) == (640, 360)


class TestWorkflowFiles:
    def test_load_values(self, tmp_path):
        p = tmp_path / "a.json"
        p.write_text(json.dumps({"widgetValues": {"k": 1}}))
        assert load_workflow_values(p) == {"k": 1}

    def test_missing_or_malformed(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{")
        assert load_workflow_values(tmp_path / "nope.json") == {}
        assert load_workflow_values(bad) == {}
        assert load_workflow_values(None) == {}

    def test_pad(self):
        assert pad_workflows([{"a": 1}], 3) == [{"a": 1}, {}, {}]
        assert pad_workflows([{}, {}, {}], 2) == [{}, {}]


class TestLoadExportManifest:
    def test_parses_video_settings(self):
        manifest = load_export_manifest(_write_manifest(_minimal_manifest()))
        assert manifest.config.mode == "grid"
        assert manifest.config.columns == 2
        assert manifest.config.fps == 24
        assert manifest.config.letterbox is True
        assert manifest.clips == ["/tmp/a.mp4", "/tmp/b.mp4"]
        assert manifest.workflows == [{}, {}]
        assert manifest.per_cell_resolution is False

    def test_path_vars_and_workflows(self, tmp_path):
        wf = tmp_path / "a.workflow.json"
        wf.write_text(json.dumps({"widgetValues": {"KSampler #3.seed": 42}}))
        path = _write_manifest(_minimal_manifest(
            paths={"root": str(tmp_path)},
            clips=[
                {"path": "${root}/a.mp4", "workflow": "${root}/a.workflow.json"},
                {"path": "${root}/b.mp4", "workflow": {"widgetValues": {"x": 1}}},
                "${root}/c.mp4",
            ],
        ))
        manifest = load_export_manifest(path)
        assert manifest.clips == [str(tmp_path / n) for n in ("a.mp4", "b.mp4", "c.mp4")]
        assert manifest.workflows == [{"KSampler #3.seed": 42}, {"x": 1}, {}]

    def test_resolution_and_background(self):
        m = _minimal_manifest()
        m["video"].update({
            "resolution": "640x360", "per_cell_resolution": True, "background": "#102030",
            "letterbox": False, "labels": True, "label_fields": ["a"],
        })
        manifest = load_export_manifest(_write_manifest(m))
        assert manifest.config.resolution == (640, 360)
        assert manifest.config.background == (16, 32, 48)
        assert manifest.config.letterbox is False
        assert manifest.config.label_fields == ("a",)
        assert manifest.per_cell_resolution is True

    def test_quoted_booleans(self):
        m = _minimal_manifest()
        m["video"].update({"letterbox": "false", "labels": "true", "per_cell_resolution": "False"})
        manifest = load_export_manifest(_write_manifest(m))
        assert manifest.config.letterbox is False
        assert manifest.config.labels is True
        assert manifest.per_cell_resolution is False

    def test_infinite_numbers_fall_back(self):
        m = _minimal_manifest()
        m["video"].update({"grid_columns": float("inf"), "fps": "-inf"})
        manifest = load_export_manifest(_write_manifest(m))
        assert manifest.config.grid_columns == 2
        assert manifest.config.fps == 30

    def test_empty_clips(self):
        with pytest.raises(ValueError, match="'clips' must be a non-empty list"):
            load_export_manifest(_write_manifest(_minimal_manifest(clips=[])))

    def test_clip_missing_path(self):
        with pytest.raises(ValueError, match="clip 1 missing required field 'path'"):
            load_export_manifest(_write_manifest(_minimal_manifest(clips=["/a.mp4", {"workflow": "x"}])))

    def test_invalid_mode(self):
        m = _minimal_manifest()
        m["video"]["mode"] = "mosaic"
        with pytest.raises(InvalidModeError):
            load_export_manifest(_write_manifest(m))

    def test_bad_background(self):
        m = _minimal_manifest()
        m["video"]["background"] = "purple"
        with pytest.raises(ValueError, match="Invalid hex color"):
            load_export_manifest(_write_manifest(m))


class TestValidateClipPaths:
    def test_lists_missing(self, tmp_path):
        present = tmp_path / "a.mp4"
        present.write_bytes(b"")
        with pytest.raises(FileNotFoundError, match="Missing 1 clip file"):
            validate_clip_paths([str(present), str(tmp_path / "gone.mp4")])

    def test_all_present(self, tmp_path):
        present = tmp_path / "a.mp4"
        present.write_bytes(b"")
        validate_clip_paths([str(present)])


class TestFilterConfig:
    def test_defaults(self):
        config = load_filter_config()
        assert config.enabled is True
        assert config.allowed_types == frozenset(DEFAULT_ALLOWED_NODE_TYPES)

    def test_enabled_override(self):
        assert load_filter_config(enabled=False).enabled is False

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "types.yaml"
        save_filter_config(FieldFilterConfig(frozenset({"KSampler", "VAEDecode"}), enabled=False), path)
        config = load_filter_config(path)
        assert config.allowed_types == frozenset({"KSampler", "VAEDecode"})
        assert config.enabled is False

    def test_plain_list_file(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("- KSampler\n- LoraLoaderModelOnly\n")
        config = load_filter_config(path)
        assert config.allowed_types == frozenset({"KSampler", "LoraLoaderModelOnly"})
        assert config.enabled is True

    def test_rejects_bad_types(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("allowed_types: KSampler\n")
        with pytest.raises(ValueError, match="must be a list"):
            load_filter_config(path)
