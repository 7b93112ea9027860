"""
Procedural dune terrain.

Elevation is a layered sum of noise bands. Each band samples a 2D noise basis
at its own frequency and phase offset and contributes ``amplitude`` times the
(optionally ridged and sharpened) value. On top of the bands sit optional
fractal detail octaves, a slow wind modulation that stretches or flattens the
dunes, and a crest term that sharpens the tallest ridges.

Two bases are available:

- ``simplex``: seeded OpenSimplex gradient noise (the default dune profile)
- ``trig``: a closed-form sin/cos product, seeded through a phase shift

The same generator builds a family of terrain layers with different sizes,
resolutions, height scales and seeds, used for near-field detail and distant
backdrops.
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

import numpy as np
import structlog
from opensimplex import OpenSimplex

from .heightfield import FieldGenerator, HeightField

logger = structlog.get_logger()

# Phase shift between consecutive detail octaves
OCTAVE_SHIFT = 37.0

# Wind modulation samples two noise fields at fixed phase offsets
WIND_OFFSET = 300.0


class NoiseBasis(str, Enum):
    """Noise primitive used by every band."""

    SIMPLEX = "simplex"
    TRIG = "trig"


@dataclass(frozen=True)
class NoiseBand:
    """One (frequency, amplitude) term of the elevation sum."""

    frequency: float
    amplitude: float
    offset: Tuple[float, float] = (0.0, 0.0)
    ridge: bool = False  # use |noise|
    exponent: float = 1.0
    anisotropy: float = 1.0  # z frequency = frequency * anisotropy


@dataclass(frozen=True)
class NoiseParameters:
    """Complete description of the elevation function."""

    seed: int = 0
    bands: Tuple[NoiseBand, ...] = field(default_factory=tuple)
    basis: NoiseBasis = NoiseBasis.SIMPLEX

    # Fractal micro-detail
    octaves: int = 0
    detail_frequency: float = 0.05
    detail_amplitude: float = 0.05
    lacunarity: float = 2.0
    persistence: float = 0.5

    # Wind modulation: height *= 1 + wind * wind_strength
    wind_frequency: float = 0.001
    wind_strength: float = 0.0

    # Crest sharpening: height += max(noise, 0) ** exponent * amplitude
    sharpness_frequency: float = 0.01
    sharpness_exponent: float = 4.0
    sharpness_amplitude: float = 0.0

    @classmethod
    def dunes(cls, seed: int = 0) -> "NoiseParameters":
        """Ridged sand dunes with medium detail, wind ripples and sharp crests."""
        return cls(
            seed=seed,
            bands=(
                # main dune body
                NoiseBand(0.002, 15.0, ridge=True, exponent=1.5),
                # medium details
                NoiseBand(0.005, 2.0, offset=(100.0, 100.0), ridge=True),
                NoiseBand(0.008, 1.2, offset=(-50.0, -50.0), ridge=True),
                # ripples, the first stretched along z
                NoiseBand(0.0003, 0.1, offset=(200.0, 200.0), ridge=True, anisotropy=100.0),
                NoiseBand(0.05, 0.06, offset=(-200.0, -200.0), ridge=True),
            ),
            wind_strength=0.4,
            sharpness_amplitude=2.0,
        )

    @classmethod
    def rolling(cls, seed: int = 0) -> "NoiseParameters":
        """Smooth rolling sand built from sin/cos products."""
        return cls(
            seed=seed,
            basis=NoiseBasis.TRIG,
            bands=(
                NoiseBand(0.1, 0.5),
                NoiseBand(0.05, 1.0, offset=(10.0, 0.0)),
                NoiseBand(0.01, 2.5, offset=(20.0, 30.0)),
            ),
        )


@dataclass(frozen=True)
class TerrainLayer:
    """One tier of a layered terrain family."""

    index: int
    size: float
    resolution: int
    height_scale: float
    noise_scale: float
    seed: int

    def lod_resolutions(self, details: Tuple[float, ...] = (1.0, 0.5, 0.25)) -> List[int]:
        """Resolutions of the reduced-detail versions of this layer."""
        return [max(1, int(self.resolution * detail)) for detail in details]


@lru_cache(maxsize=32)
def _simplex(seed: int) -> OpenSimplex:
    return OpenSimplex(seed=int(seed))


class _SimplexBasis:
    """OpenSimplex evaluated either pointwise or over a pair of axes."""

    def __init__(self, seed: int, grid: bool):
        self.generator = _simplex(seed)
        self.grid = grid
        self._pointwise = np.vectorize(self.generator.noise2, otypes=[np.float64])

    def __call__(self, x, z):
        if self.grid:
            return self.generator.noise2array(
                np.asarray(x, dtype=np.float64), np.asarray(z, dtype=np.float64)
            )
        if np.ndim(x) == 0 and np.ndim(z) == 0:
            return self.generator.noise2(float(x), float(z))
        return self._pointwise(x, z)


class _TrigBasis:
    """sin(x) * cos(z), phase shifted by the seed."""

    def __init__(self, seed: int, grid: bool):
        # default_rng only takes non-negative seeds
        rng = np.random.default_rng(seed & 0xFFFFFFFF)
        self.phase_x, self.phase_z = rng.uniform(0.0, 2.0 * np.pi, size=2) if seed else (0.0, 0.0)
        self.grid = grid

    def __call__(self, x, z):
        sx = np.sin(np.asarray(x, dtype=np.float64) + self.phase_x)
        cz = np.cos(np.asarray(z, dtype=np.float64) + self.phase_z)
        if self.grid:
            return np.outer(cz, sx)
        return sx * cz


def _signed_power(values, exponent: float):
    if exponent == 1.0:
        return values
    return np.sign(values) * np.power(np.abs(values), exponent)


class NoiseTerrainGenerator:
    """
    Deterministic dune elevation function and layer builder.

    ``produce`` is a pure function of its inputs: the same coordinates, seed
    and scale always give the same elevation. Output is never clamped; a
    HeightField clamps when the values are written into it.
    """

    def __init__(self, params: Optional[NoiseParameters] = None):
        self.params = params if params is not None else NoiseParameters.dunes()

    def _basis(self, seed: int, grid: bool):
        if self.params.basis == NoiseBasis.TRIG:
            return _TrigBasis(seed, grid)
        return _SimplexBasis(seed, grid)

    def _compose(self, basis, x, z, scale: float):
        p = self.params
        height = 0.0

        for band in p.bands:
            fx = band.frequency * scale
            fz = fx * band.anisotropy
            value = basis(x * fx + band.offset[0], z * fz + band.offset[1])
            if band.ridge:
                value = np.abs(value)
            height = height + _signed_power(value, band.exponent) * band.amplitude

        frequency = p.detail_frequency * scale
        amplitude = p.detail_amplitude
        for octave in range(p.octaves):
            shift = (octave + 1) * OCTAVE_SHIFT
            height = height + basis(x * frequency + shift, z * frequency - shift) * amplitude
            frequency *= p.lacunarity
            amplitude *= p.persistence

        if p.wind_strength:
            wf = p.wind_frequency
            wind = basis(x * wf + WIND_OFFSET, z * wf + WIND_OFFSET) * basis(
                x * wf * 2 - WIND_OFFSET, z * wf * 2 - WIND_OFFSET
            )
            height = height * (1 + wind * p.wind_strength)

        if p.sharpness_amplitude:
            sf = p.sharpness_frequency
            crest = np.maximum(basis(x * sf, z * sf), 0.0)
            height = height + np.power(crest, p.sharpness_exponent) * p.sharpness_amplitude

        return height

    def produce(self, x, z, seed: Optional[int] = None, scale: float = 1.0):
        """
        Elevation at world ``(x, z)``.

        Args:
            x: World x, scalar or array
            z: World z, scalar or array broadcastable against ``x``
            seed: Noise seed, defaults to the parameters' seed
            scale: Frequency multiplier applied to the bands and detail octaves

        Returns:
            float for scalar input, otherwise an array of the broadcast shape
        """
        seed = self.params.seed if seed is None else seed
        if np.ndim(x) == 0 and np.ndim(z) == 0:
            return float(self._compose(self._basis(seed, grid=False), float(x), float(z), scale))

        x, z = np.broadcast_arrays(np.asarray(x, dtype=np.float64), np.asarray(z, dtype=np.float64))
        height = self._compose(self._basis(seed, grid=False), x, z, scale)
        return np.broadcast_to(height, x.shape).astype(np.float64)

    def produce_grid(self, xs, zs, seed: Optional[int] = None, scale: float = 1.0) -> np.ndarray:
        """
        Elevation over the grid spanned by two axes.

        Returns:
            Array of shape ``(len(zs), len(xs))`` where ``[i, j]`` equals
            ``produce(xs[j], zs[i])``
        """
        seed = self.params.seed if seed is None else seed
        xs = np.asarray(xs, dtype=np.float64)
        zs = np.asarray(zs, dtype=np.float64)
        height = self._compose(self._basis(seed, grid=True), xs, zs, scale)
        return np.broadcast_to(height, (zs.size, xs.size)).astype(np.float64)

    def sampler(self, seed: Optional[int] = None, scale: float = 1.0, height_scale: float = 1.0) -> FieldGenerator:
        """Fill callable for ``HeightField.fill``."""

        def generate(xs: np.ndarray, zs: np.ndarray) -> np.ndarray:
            return self.produce_grid(xs, zs, seed=seed, scale=scale) * height_scale

        return generate

    def populate(
        self,
        heightfield: HeightField,
        seed: Optional[int] = None,
        scale: float = 1.0,
        height_scale: float = 1.0,
    ) -> HeightField:
        """Overwrite a field with noise elevation."""
        heightfield.fill(self.sampler(seed=seed, scale=scale, height_scale=height_scale))
        return heightfield

    @staticmethod
    def build_layers(
        count: int,
        base_size: float,
        resolution: int,
        base_height: float,
        seed: int = 0,
    ) -> List[TerrainLayer]:
        """
        Describe a layered terrain family.

        Each layer doubles the size of the previous one, drops resolution by a
        factor of 1.5 (never below 16 segments), loses 15% of the height scale,
        lowers the noise frequency and gets its own seed.
        """
        layers = []
        for index in range(count):
            layers.append(
                TerrainLayer(
                    index=index,
                    size=base_size * 2**index,
                    resolution=max(16, int(resolution / 1.5**index)),
                    height_scale=base_height * (1 - index * 0.15),
                    noise_scale=1 / (index + 1),
                    seed=seed + index,
                )
            )
        return layers

    def generate_layer(self, layer: TerrainLayer, max_height: float) -> HeightField:
        """Build and populate the HeightField for one layer."""
        heightfield = HeightField(layer.resolution, layer.size, max_height)
        self.populate(heightfield, seed=layer.seed, scale=layer.noise_scale, height_scale=layer.height_scale)
        logger.info(
            "Terrain layer generated",
            layer=layer.index,
            size=layer.size,
            resolution=layer.resolution,
            seed=layer.seed,
        )
        return heightfield
