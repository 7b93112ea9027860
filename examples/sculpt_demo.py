#!/usr/bin/env python3
"""
Simple demo script showing dune generation, sculpting and export.
"""

import numpy as np
from desert_painter.config import Settings
from desert_painter.core import CameraState
from desert_painter.session import EditingSession, PointerState


def describe(field):
    heights = field.heights
    print(f"  Samples: {field.sample_count} ({field.samples_per_side}x{field.samples_per_side})")
    print(f"  Height range: {heights.min():.2f}-{heights.max():.2f}")
    print(f"  Average height: {heights.mean():.2f}")


def main():
    """Demonstrate a short sculpting session."""
    print("Desert Painter Sculpting Demo")
    print("=" * 40)

    config = Settings(terrain_resolution=64, terrain_size=128.0, base_height=3.0, export_dir="./exports")
    session = EditingSession(config)

    print("\nGenerating dunes (seed 7)...")
    field = session.regenerate(seed=7)
    describe(field)

    # Camera hovering over the middle of the terrain
    camera = CameraState.perspective((0, 80, 60), (0, 0, 0), width=800, height=600)

    for mode in ["raise", "lower", "flatten", "smooth"]:
        print(f"\n{mode.upper()} brush:")
        print("-" * 30)
        session.update_brush({"mode": mode, "size": 12, "strength": 80})

        # Drag the pointer across the canvas for a few ticks
        for x in np.linspace(300, 500, 10):
            session.tick(PointerState(x, 300, active=True), camera)
        session.tick(PointerState(500, 300, active=False), camera)

        print(f"  Version: {session.version}")
        describe(session.field)

    print("\n\nLayer family:")
    print("-" * 30)
    for layer in session.layers():
        print(f"  Layer {layer.index}: size {layer.size:.0f}, resolution {layer.resolution}, LODs {layer.lod_resolutions()}")

    path = session.export()
    print(f"\nHeightmap written to {path}")


if __name__ == "__main__":
    main()
