"""
Tests for procedural dune generation.
"""

import math

import pytest
import numpy as np
from desert_painter.core.heightfield import HeightField
from desert_painter.core.noise_generator import (
    NoiseBand,
    NoiseBasis,
    NoiseParameters,
    NoiseTerrainGenerator,
)


class TestNoiseTerrainGenerator:
    """Test the dune elevation function."""

    @pytest.fixture
    def generator(self):
        return NoiseTerrainGenerator(NoiseParameters.dunes(seed=42))

    @pytest.fixture
    def axes(self):
        xs = np.linspace(-250.0, 250.0, 9)
        zs = np.linspace(-250.0, 250.0, 7)
        return xs, zs

    def test_scalar_output(self, generator):
        """Test scalar inputs give a float."""
        assert isinstance(generator.produce(10.0, -20.0), float)

    def test_deterministic(self, generator, axes):
        """Test the same inputs always give the same elevation."""
        xs, zs = axes
        first = generator.produce_grid(xs, zs)
        second = NoiseTerrainGenerator(NoiseParameters.dunes(seed=42)).produce_grid(xs, zs)
        assert np.array_equal(first, second)
        assert generator.produce(12.5, 7.25) == generator.produce(12.5, 7.25)

    def test_seed_changes_terrain(self, generator, axes):
        """Test different seeds give different terrain."""
        xs, zs = axes
        assert not np.allclose(generator.produce_grid(xs, zs, seed=1), generator.produce_grid(xs, zs, seed=2))

    def test_grid_matches_pointwise(self, generator, axes):
        """Test grid evaluation agrees with pointwise evaluation."""
        xs, zs = axes
        grid = generator.produce_grid(xs, zs)
        assert grid.shape == (zs.size, xs.size)

        x_mesh, z_mesh = np.meshgrid(xs, zs)
        np.testing.assert_allclose(grid, generator.produce(x_mesh, z_mesh), atol=1e-12)
        assert grid[3, 5] == pytest.approx(generator.produce(xs[5], zs[3]))

    def test_dunes_are_non_negative(self, generator, axes):
        """Test ridged dunes never dip below the base plane."""
        xs, zs = axes
        assert np.all(generator.produce_grid(xs, zs) >= 0)

    def test_output_is_unclamped(self):
        """Test the generator itself applies no height limit."""
        # sin(pi/2) * cos(0) * 1000 everywhere
        generator = NoiseTerrainGenerator(
            NoiseParameters(bands=(NoiseBand(0.0, 1000.0, offset=(math.pi / 2, 0.0)),), basis=NoiseBasis.TRIG)
        )
        assert generator.produce(3.0, 4.0) == pytest.approx(1000.0)

    def test_trig_basis_closed_form(self):
        """Test the trig preset reproduces the sin/cos dune sum."""
        generator = NoiseTerrainGenerator(NoiseParameters.rolling())
        x, z = 13.0, -42.0
        expected = (
            math.sin(x * 0.1) * math.cos(z * 0.1) * 0.5
            + math.sin(x * 0.05 + 10) * math.cos(z * 0.05) * 1.0
            + math.sin(x * 0.01 + 20) * math.cos(z * 0.01 + 30) * 2.5
        )
        assert generator.produce(x, z) == pytest.approx(expected)

    def test_trig_seed_shifts_phase(self):
        """Test the trig basis still depends on the seed."""
        generator = NoiseTerrainGenerator(NoiseParameters.rolling())
        assert generator.produce(13.0, -42.0, seed=5) != pytest.approx(generator.produce(13.0, -42.0, seed=0))

    def test_trig_negative_seed(self):
        """Test negative seeds work for the trig basis as they do for simplex."""
        generator = NoiseTerrainGenerator(NoiseParameters.rolling())
        grid = generator.produce_grid(np.arange(4.0), np.arange(3.0), seed=-7)
        assert grid.shape == (3, 4)
        assert np.all(np.isfinite(grid))
        assert generator.produce(1.0, 2.0, seed=-7) == pytest.approx(grid[2, 1])

    def test_detail_octaves_add_texture(self, axes):
        """Test fractal octaves change the surface."""
        xs, zs = axes
        plain = NoiseTerrainGenerator(NoiseParameters.dunes(seed=3))
        detailed = NoiseTerrainGenerator(
            NoiseParameters(
                seed=3,
                bands=NoiseParameters.dunes().bands,
                octaves=3,
                detail_amplitude=0.5,
                wind_strength=0.4,
                sharpness_amplitude=2.0,
            )
        )
        assert not np.allclose(plain.produce_grid(xs, zs), detailed.produce_grid(xs, zs))

    def test_scale_lowers_frequency(self):
        """Test a smaller scale stretches the trig pattern."""
        generator = NoiseTerrainGenerator(
            NoiseParameters(bands=(NoiseBand(0.1, 1.0),), basis=NoiseBasis.TRIG)
        )
        assert generator.produce(20.0, 0.0, scale=0.5) == pytest.approx(generator.produce(10.0, 0.0))

    def test_no_bands_gives_flat_grid(self):
        """Test an empty parameter set yields a flat grid of the right shape."""
        generator = NoiseTerrainGenerator(NoiseParameters())
        grid = generator.produce_grid(np.arange(4.0), np.arange(3.0))
        assert grid.shape == (3, 4)
        assert np.all(grid == 0)

    def test_populate_clamps_into_field(self, generator):
        """Test values are clamped only when written into a field."""
        field = HeightField(8, 500.0, max_height=1.0)
        generator.populate(field, height_scale=100.0)
        assert field.heights.max() <= 1.0
        assert field.heights.min() >= -1.0
        assert field.version == 1

    def test_sampler_fills_field(self, generator):
        """Test the sampler follows the field's axes."""
        field = HeightField(6, 60.0, max_height=1000.0)
        field.fill(generator.sampler(height_scale=2.0))

        x, z = field.sample_to_world(2, 5)
        assert field.get(2, 5) == pytest.approx(generator.produce(x, z) * 2.0)


class TestTerrainLayers:
    """Test the layered terrain family."""

    def test_build_layers(self):
        """Test layer sizes, resolutions, heights and seeds."""
        layers = NoiseTerrainGenerator.build_layers(count=4, base_size=500.0, resolution=128, base_height=20.0, seed=9)

        assert [layer.size for layer in layers] == [500.0, 1000.0, 2000.0, 4000.0]
        assert [layer.resolution for layer in layers] == [128, 85, 56, 37]
        assert [layer.height_scale for layer in layers] == pytest.approx([20.0, 17.0, 14.0, 11.0])
        assert [layer.noise_scale for layer in layers] == pytest.approx([1.0, 0.5, 1 / 3, 0.25])
        assert len({layer.seed for layer in layers}) == 4
        assert layers[0].seed == 9

    def test_resolution_floor(self):
        """Test far layers never drop below 16 segments."""
        layers = NoiseTerrainGenerator.build_layers(count=6, base_size=100.0, resolution=20, base_height=5.0)
        assert all(layer.resolution >= 16 for layer in layers)

    def test_lod_resolutions(self):
        """Test reduced-detail resolutions of a layer."""
        layer = NoiseTerrainGenerator.build_layers(count=1, base_size=500.0, resolution=200, base_height=3.0)[0]
        assert layer.lod_resolutions() == [200, 100, 50]

    def test_generate_layer(self):
        """Test each layer becomes its own field."""
        generator = NoiseTerrainGenerator(NoiseParameters.dunes())
        layers = generator.build_layers(count=2, base_size=100.0, resolution=16, base_height=3.0, seed=1)

        near = generator.generate_layer(layers[0], max_height=100.0)
        far = generator.generate_layer(layers[1], max_height=100.0)

        assert near.resolution == 16
        assert far.size == 200.0
        assert far.resolution == 16
        assert not np.allclose(near.heights, far.heights)
