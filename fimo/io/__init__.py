"""
Image input/output for FIMO
"""

from .images import RasterImage, as_raster, decode_image, encode_image, load_image, to_rgba

__all__ = [
    'RasterImage',
    'as_raster',
    'decode_image',
    'encode_image',
    'load_image',
    'to_rgba',
]
