#!/usr/bin/env python3
"""Generate synthetic renders for the clipcollate demos.

Creates 6 clips in examples/demo-clips/, each carrying a small workflow
graph in its `comment` tag the way node-graph tools embed theirs. The
graphs differ in sampler, cfg, seed and LoRA so the diff view has
something to show. Each clip is a solid color with a white caption frame
at the end naming its sampler.

Usage:
    python examples/generate_demo_clips.py
    # Then compare and export:
    clipcollate compare examples/demo-clips/ --sort name --asc
    clipcollate export --manifest examples/export-grid.yaml --output grid.mp4
"""

import json

import numpy as np
from moviepy import ColorClip, CompositeVideoClip, ImageClip
from pathlib import Path
from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-clips"
SIZE = (320, 240)
FPS = 30

# name, color, duration, sampler, cfg, seed, lora
RENDERS = [
    ("render-01", (180, 60, 60),  2.0, "euler",     7.0, 1001, "style-a.safetensors"),
    ("render-02", (60, 60, 180),  2.0, "euler",     7.0, 1002, "style-a.safetensors"),
    ("render-03", (60, 160, 60),  2.5, "dpmpp_2m",  7.0, 1003, "style-a.safetensors"),
    ("render-04", (200, 130, 40), 1.5, "dpmpp_2m",  5.5, 1004, "style-a.safetensors"),
    ("render-05", (130, 60, 180), 3.0, "dpmpp_2m",  5.5, 1005, "style-b.safetensors"),
    ("render-06", (40, 170, 170), 2.0, "uni_pc",    5.5, 1006, "style-b.safetensors"),
]


def _workflow(sampler: str, cfg: float, seed: int, lora: str) -> dict:
    """A minimal editor-format graph: checkpoint -> LoRA -> sampler."""
    return {
        "nodes": [
            {"id": 1, "type": "CheckpointLoaderSimple",
             "widgets_values": ["wan2.1-t2v.safetensors"],
             "outputs": [{"name": "MODEL"}, {"name": "CLIP"}, {"name": "VAE"}]},
            {"id": 2, "type": "LoraLoaderModelOnly",
             "inputs": [{"name": "model", "link": 1}],
             "widgets_values": [lora, 0.8],
             "outputs": [{"name": "MODEL"}]},
            {"id": 3, "type": "KSampler",
             "inputs": [{"name": "model", "link": 2}],
             "widgets_values": [seed, "fixed", 20, cfg, sampler, "normal", 1.0],
             "outputs": [{"name": "LATENT"}]},
            {"id": 4, "type": "PrimitiveNode", "title": "Set_SEED",
             "widgets_values": [seed]},
        ],
        "links": [
            [1, 1, 0, 2, 0, "MODEL"],
            [2, 2, 0, 3, 0, "MODEL"],
        ],
    }


def _make_caption_frame(bg_color: tuple[int, int, int], text: str) -> np.ndarray:
    """White caption on a dimmed version of the clip color."""
    dim = tuple(max(c // 3, 20) for c in bg_color)
    img = Image.new("RGB", SIZE, dim)
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 36
        )
    except OSError:
        font = ImageFont.load_default()
    bbox = draw.textbbox((0, 0), text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(
        ((SIZE[0] - tw) / 2, (SIZE[1] - th) / 2),
        text,
        fill=(255, 255, 255),
        font=font,
    )
    return np.array(img)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, color, duration, sampler, cfg, seed, lora in RENDERS:
        out = OUTPUT_DIR / f"{name}.mp4"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue

        body_dur = max(duration - 0.5, 0.5)
        body = ColorClip(size=SIZE, color=color, duration=body_dur)
        caption = ImageClip(
            _make_caption_frame(color, sampler), duration=0.5,
        ).with_start(body_dur)

        workflow = json.dumps(_workflow(sampler, cfg, seed, lora), separators=(",", ":"))
        final = CompositeVideoClip([body, caption], size=SIZE)
        final.write_videofile(
            str(out), fps=FPS, logger=None,
            ffmpeg_params=["-metadata", f"comment={workflow}"],
        )
        print(f"  wrote {name} ({sampler}, cfg {cfg}, {duration}s)")

    print(f"\nDone. {len(RENDERS)} clips in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
