"""clipcollate: compare and compose node-graph generated video clips.

Reads the generation workflow embedded in each clip's container tags,
flattens it into a field map for side-by-side review, and renders a
chosen set of clips into one video, end-to-end or tiled into a grid,
with optional burned-in labels built from those fields.
"""
