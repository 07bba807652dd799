"""
Adaptive piecewise Chebyshev representations.

Classes exported:
    Map, Piece, Chebfun, Sampler, Scales, Construction

Functions exported:
    linear_map, unbounded_map, default_map
    legpoly, lagpoly
    detect_edge, happiness, grow_piece, auto, construct
"""

from .chebfun import Chebfun
from .construct import Construction, Sampler, Scales, auto, construct, grow_piece, happiness
from .edges import detect_edge, find_blowup, find_jump, max_derivatives
from .maps import Map, default_map, linear_map, unbounded_map
from .piece import Piece
from .polys import lagpoly, legpoly

__all__ = [
    "Chebfun",
    "Construction",
    "Map",
    "Piece",
    "Sampler",
    "Scales",
    "auto",
    "construct",
    "default_map",
    "detect_edge",
    "find_blowup",
    "find_jump",
    "grow_piece",
    "happiness",
    "lagpoly",
    "legpoly",
    "linear_map",
    "max_derivatives",
    "unbounded_map",
]
