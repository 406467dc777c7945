"""
Vector river geometry.

Turns traced river points into smooth, width-scaled cubic Bezier segments:
- Group points by river id in order of appearance
- Inject meander points between consecutive samples
- Convert the polyline with chord-length Catmull-Rom interpolation
- Size each stroke from the discharge of the cell that owns it
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .alea_prng import AleaPRNG
from .options import HydrologyOptions
from .rivers import RiverPoint
from .state import NO_CELL

logger = structlog.get_logger()

Vertex = Tuple[float, float]


@dataclass
class BezierSegment:
    """One cubic Bezier piece of a river stroke."""

    sx: float
    sy: float
    cx1: float
    cy1: float
    cx2: float
    cy2: float
    ex: float
    ey: float
    width: float = 0.0
    shadow_width: float = 0.0
    river_id: int = 0

    @property
    def start(self) -> Vertex:
        return self.sx, self.sy

    @property
    def end(self) -> Vertex:
        return self.ex, self.ey

    def to_dict(self) -> Dict:
        return {
            "river_id": self.river_id,
            "start": [self.sx, self.sy],
            "ctrl1": [self.cx1, self.cy1],
            "ctrl2": [self.cx2, self.cy2],
            "end": [self.ex, self.ey],
            "width": self.width,
            "shadow_width": self.shadow_width,
        }


def group_points(points: Sequence[RiverPoint]) -> Dict[int, List[RiverPoint]]:
    """Points per river id; dict order follows first appearance."""
    groups: Dict[int, List[RiverPoint]] = {}
    for point in points:
        groups.setdefault(point.river, []).append(point)
    return groups


def catmull_rom_to_beziers(polyline: Sequence[Vertex], alpha: float = 1.0) -> List[BezierSegment]:
    """
    Convert a polyline into cubic Bezier segments along a Catmull-Rom spline.

    One segment is produced per consecutive pair of points. Each segment
    starts and ends exactly on those points; neighbors beyond the ends are
    clamped to the end points.

    Args:
        polyline: Ordered vertices
        alpha: Chord length exponent (1 for chordal, 0.5 for centripetal)

    Returns:
        ``len(polyline) - 1`` segments with zero width.
    """
    n = len(polyline)
    if n < 2:
        return []

    def td(p: Vertex, q: Vertex) -> float:
        return math.hypot(q[0] - p[0], q[1] - p[1]) ** alpha

    segments = []
    for i in range(n - 1):
        p0 = polyline[max(0, i - 1)]
        p1 = polyline[i]
        p2 = polyline[i + 1]
        p3 = polyline[min(n - 1, i + 2)]

        t0 = 0.0
        t1 = t0 + td(p0, p1)
        t2 = t1 + td(p1, p2)
        t3 = t2 + td(p2, p3)

        d1 = (t2 - t0) or 1.0
        d2 = (t3 - t1) or 1.0
        m1x = (p2[0] - p0[0]) / d1 * (t1 - t0)
        m1y = (p2[1] - p0[1]) / d1 * (t1 - t0)
        m2x = (p3[0] - p1[0]) / d2 * (t3 - t2)
        m2y = (p3[1] - p1[1]) / d2 * (t3 - t2)

        segments.append(
            BezierSegment(
                sx=p1[0],
                sy=p1[1],
                cx1=p1[0] + m1x / 3,
                cy1=p1[1] + m1y / 3,
                cx2=p2[0] - m2x / 3,
                cy2=p2[1] - m2y / 3,
                ex=p2[0],
                ey=p2[1],
            )
        )

    return segments


class RiverGeometryBuilder:
    """Builds Bezier strokes for every traced river."""

    def __init__(
        self,
        rng: AleaPRNG,
        flux: Optional[np.ndarray] = None,
        options: Optional[HydrologyOptions] = None,
    ):
        self.rng = rng
        self.flux = flux
        self.options = options or HydrologyOptions()

    def add_meanders(self, vertices: List[Vertex], owners: List[int]) -> Tuple[List[Vertex], List[int]]:
        """
        Insert two offset points at 1/3 and 2/3 of every consecutive pair.

        The offset magnitude is ``meander_min + draw * meander_range``; a
        second draw picks the x axis (above 0.5) or the y axis. The first
        inserted point moves forward along the axis and the second backward.
        Inserted points inherit the owner of the preceding sample.
        """
        opts = self.options
        out: List[Vertex] = []
        out_owners: List[int] = []

        for i, (a, owner) in enumerate(zip(vertices, owners)):
            out.append(a)
            out_owners.append(owner)
            if i + 1 >= len(vertices):
                continue

            b = vertices[i + 1]
            st = [(a[0] * 2 + b[0]) / 3, (a[1] * 2 + b[1]) / 3]
            en = [(a[0] + b[0] * 2) / 3, (a[1] + b[1] * 2) / 3]

            meander = self.rng.uniform(opts.meander_min, opts.meander_min + opts.meander_range)
            axis = 0 if self.rng.random() > 0.5 else 1
            st[axis] += meander
            en[axis] -= meander

            out.extend([(st[0], st[1]), (en[0], en[1])])
            out_owners.extend([owner, owner])

        return out, out_owners

    def segment_width(self, index: int, owner: int) -> Tuple[float, float]:
        """Stroke and shadow width for the segment at ``index`` owned by ``owner``."""
        opts = self.options
        local_flux = opts.default_flux
        if self.flux is not None and owner != NO_CELL and 0 <= owner < len(self.flux):
            value = float(self.flux[owner])
            if math.isfinite(value):
                local_flux = value

        width = index / 100 + local_flux / opts.width_flux_divisor
        if width > opts.width_saturation:
            width *= 0.9
        shadow = max(opts.min_shadow_width, width / 3)
        return width, shadow

    def build_river(self, river_id: int, points: Sequence[RiverPoint]) -> List[BezierSegment]:
        """Segments for one river; fewer than two points yields none."""
        if len(points) < 2:
            return []

        vertices = [(float(p.x), float(p.y)) for p in points]
        owners = [int(p.cell) if p.cell is not None else NO_CELL for p in points]
        if len(vertices) > 2:
            vertices, owners = self.add_meanders(vertices, owners)

        segments = catmull_rom_to_beziers(vertices, self.options.catmull_rom_alpha)
        for index, segment in enumerate(segments):
            segment.width, segment.shadow_width = self.segment_width(index, owners[index])
            segment.river_id = river_id
        return segments

    def build(self, points: Sequence[RiverPoint]) -> List[BezierSegment]:
        """
        Build segments for all rivers in order of first appearance.

        Args:
            points: Traced river points, any order within a river preserved

        Returns:
            Flat list of segments across rivers.
        """
        segments: List[BezierSegment] = []
        skipped = 0
        for river_id, river_points in group_points(points).items():
            if len(river_points) < 2:
                skipped += 1
                continue
            segments.extend(self.build_river(river_id, river_points))

        logger.info("River geometry built", segments=len(segments), skipped_rivers=skipped)
        return segments
