"""
Core terrain editing functionality.
"""

from .heightfield import HeightField, Footprint
from .brush import BrushEngine, BrushStroke, BrushMode, falloff
from .noise_generator import NoiseTerrainGenerator, NoiseParameters, NoiseBand, NoiseBasis, TerrainLayer
from .projector import CursorProjector, CameraState
from .exporter import HeightmapExporter, HeightmapImage, HeightmapExportError

__all__ = ['HeightField', 'Footprint', 'BrushEngine', 'BrushStroke', 'BrushMode', 'falloff',
           'NoiseTerrainGenerator', 'NoiseParameters', 'NoiseBand', 'NoiseBasis', 'TerrainLayer',
           'CursorProjector', 'CameraState',
           'HeightmapExporter', 'HeightmapImage', 'HeightmapExportError']
