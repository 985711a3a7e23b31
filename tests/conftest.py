"""Shared test fixtures for clipcollate tests."""

import json
import subprocess

import pytest
import imageio_ffmpeg

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


SAMPLE_WORKFLOW = {
    "nodes": [
        {
            "id": 3,
            "type": "KSampler",
            "inputs": [
                {"name": "model", "link": 1},
                {"name": "cfg", "value": 7.5},
            ],
            "widgets_values": [123456, "fixed", 20, "euler"],
            "outputs": [{"name": "LATENT"}],
        },
        {
            "id": 4,
            "type": "CheckpointLoaderSimple",
            "widgets_values": ["sdxl.safetensors"],
            "outputs": [{"name": "MODEL"}, {"name": "CLIP"}, {"name": "VAE"}],
        },
        {
            "id": 7,
            "type": "PrimitiveNode",
            "title": "Seed",
            "widgets_values": ["X"],
        },
    ],
    "links": [[1, 4, 0, 3, 0, "MODEL"]],
}


@pytest.fixture
def sample_workflow():
    return json.loads(json.dumps(SAMPLE_WORKFLOW))


def make_video(out, size="320x240", duration=2, rate=10, color="blue", metadata=None, audio=False):
    """Render a solid-color test clip with the bundled ffmpeg."""
    cmd = [_FFMPEG, "-y", "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r={rate}"]
    if audio:
        cmd += ["-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono", "-shortest", "-c:a", "aac", "-b:a", "32k"]
    cmd += ["-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p"]
    for key, value in (metadata or {}).items():
        cmd += ["-metadata", f"{key}={value}"]
    cmd.append(str(out))
    subprocess.run(cmd, check=True, capture_output=True)
    return out


@pytest.fixture
def source_video(tmp_path):
    """A 2-second 320x240 10fps clip with audio and no workflow."""
    return make_video(tmp_path / "source.mp4", audio=True)


@pytest.fixture
def tagged_video(tmp_path):
    """A 2-second clip carrying SAMPLE_WORKFLOW in its comment tag."""
    return make_video(
        tmp_path / "tagged.mp4",
        color="red",
        metadata={"comment": json.dumps(SAMPLE_WORKFLOW), "title": "render 1"},
    )


@pytest.fixture
def portrait_video(tmp_path):
    """A 1-second 240x320 clip, for aspect-ratio handling."""
    return make_video(tmp_path / "portrait.mp4", size="240x320", duration=1, color="green")
