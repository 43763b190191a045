"""
Walkway Environment
Immutable geometry: walls, entry/target zones, flows and timing lines
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
from scipy.spatial import KDTree


class ConfigurationError(ValueError):
    """Raised when an environment or configuration cannot be simulated."""


class Direction(Enum):
    FORWARD = 'forward'
    BACKWARD = 'backward'


# ==================== GEOMETRY HELPERS ====================

def closest_point_on_segment(point: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Closest point to ``point`` on the segment start-end"""
    segment = end - start
    length_sq = float(np.dot(segment, segment))
    if length_sq < 1e-12:
        return start.copy()
    t = max(0.0, min(1.0, float(np.dot(point - start, segment)) / length_sq))
    return start + t * segment


def _orientation(ax, ay, bx, by, cx, cy) -> float:
    return (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)


def _on_segment(ax, ay, bx, by, px, py) -> bool:
    return min(ax, bx) - 1e-12 <= px <= max(ax, bx) + 1e-12 and \
           min(ay, by) - 1e-12 <= py <= max(ay, by) + 1e-12


def segments_intersect(p1, p2, q1, q2) -> bool:
    """True if segment p1-p2 touches or crosses segment q1-q2"""
    p1x, p1y = float(p1[0]), float(p1[1])
    p2x, p2y = float(p2[0]), float(p2[1])
    q1x, q1y = float(q1[0]), float(q1[1])
    q2x, q2y = float(q2[0]), float(q2[1])

    d1 = _orientation(q1x, q1y, q2x, q2y, p1x, p1y)
    d2 = _orientation(q1x, q1y, q2x, q2y, p2x, p2y)
    d3 = _orientation(p1x, p1y, p2x, p2y, q1x, q1y)
    d4 = _orientation(p1x, p1y, p2x, p2y, q2x, q2y)

    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True
    if d1 == 0 and _on_segment(q1x, q1y, q2x, q2y, p1x, p1y):
        return True
    if d2 == 0 and _on_segment(q1x, q1y, q2x, q2y, p2x, p2y):
        return True
    if d3 == 0 and _on_segment(p1x, p1y, p2x, p2y, q1x, q1y):
        return True
    if d4 == 0 and _on_segment(p1x, p1y, p2x, p2y, q2x, q2y):
        return True
    return False


def point_in_polygon(point, polygon) -> bool:
    """Ray casting containment test"""
    x, y = float(point[0]), float(point[1])
    n = len(polygon)
    inside = False
    p1x, p1y = float(polygon[0][0]), float(polygon[0][1])
    for i in range(1, n + 1):
        p2x, p2y = float(polygon[i % n][0]), float(polygon[i % n][1])
        if y > min(p1y, p2y) and y <= max(p1y, p2y) and x <= max(p1x, p2x):
            if p1y != p2y:
                xints = (y - p1y) * (p2x - p1x) / (p2y - p1y) + p1x
            if p1x == p2x or x <= xints:
                inside = not inside
        p1x, p1y = p2x, p2y
    return inside


# ==================== SEGMENT CLASS ====================
@dataclass
class Segment:
    """Straight line segment; used for impassable walls and timing lines"""
    start: Tuple[float, float]
    end: Tuple[float, float]

    def __post_init__(self):
        self.start = np.array(self.start, dtype=float)
        self.end = np.array(self.end, dtype=float)

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.end - self.start))

    def distance_and_normal(self, point: np.ndarray) -> Tuple[float, np.ndarray]:
        """
        Distance from the segment to ``point`` and the unit normal pointing
        from the segment towards the point. A point lying on the segment gets
        a zero normal.
        """
        closest = closest_point_on_segment(point, self.start, self.end)
        diff = point - closest
        dist = float(np.linalg.norm(diff))
        if dist < 1e-12:
            return 0.0, np.zeros(2)
        return dist, diff / dist

    def crosses(self, p: np.ndarray, q: np.ndarray) -> bool:
        """True if the move p -> q touches or crosses this segment"""
        return segments_intersect(p, q, self.start, self.end)

    def intersects_zone(self, zone: 'Zone') -> bool:
        if point_in_polygon(self.start, zone.vertices) or point_in_polygon(self.end, zone.vertices):
            return True
        vertices = zone.vertices
        for i in range(len(vertices)):
            if segments_intersect(self.start, self.end, vertices[i], vertices[(i + 1) % len(vertices)]):
                return True
        return False

    def as_list(self) -> List[List[float]]:
        return [self.start.tolist(), self.end.tolist()]


# ==================== ZONE CLASS ====================
class Zone:
    """Polygonal region where walkers are created or considered arrived"""

    def __init__(self, name: str, vertices: Sequence[Tuple[float, float]]):
        """
        Initialize a zone.

        Args:
            name: Zone name (unique within the environment)
            vertices: Polygon corners in order, at least three
        """
        self.name = name
        self.vertices = np.array(vertices, dtype=float)
        if self.vertices.ndim != 2 or self.vertices.shape[0] < 3 or self.vertices.shape[1] != 2:
            raise ConfigurationError(f"Zone '{name}' needs at least three (x, y) vertices")

        x, y = self.vertices[:, 0], self.vertices[:, 1]
        cross = x * np.roll(y, -1) - np.roll(x, -1) * y
        signed_area = 0.5 * float(np.sum(cross))
        self.area = abs(signed_area)
        if self.area > 1e-12:
            cx = float(np.sum((x + np.roll(x, -1)) * cross)) / (6.0 * signed_area)
            cy = float(np.sum((y + np.roll(y, -1)) * cross)) / (6.0 * signed_area)
            self.centroid = np.array([cx, cy])
        else:
            self.centroid = self.vertices.mean(axis=0)
        self.bbox_min = self.vertices.min(axis=0)
        self.bbox_max = self.vertices.max(axis=0)

    @classmethod
    def rectangle(cls, name: str, x_min: float, y_min: float, x_max: float, y_max: float) -> 'Zone':
        return cls(name, [(x_min, y_min), (x_max, y_min), (x_max, y_max), (x_min, y_max)])

    def contains(self, point: np.ndarray) -> bool:
        if point[0] < self.bbox_min[0] or point[0] > self.bbox_max[0] or \
                point[1] < self.bbox_min[1] or point[1] > self.bbox_max[1]:
            return False
        return point_in_polygon(point, self.vertices)

    def sample(self, rng: np.random.Generator, max_tries: int = 1000) -> np.ndarray:
        """Uniform point inside the zone (rejection sampling in the bounding box)"""
        for _ in range(max_tries):
            candidate = rng.uniform(self.bbox_min, self.bbox_max)
            if self.contains(candidate):
                return candidate
        return self.centroid.copy()

    def as_list(self) -> List[List[float]]:
        return self.vertices.tolist()

    def __repr__(self):
        return f"Zone('{self.name}', area={self.area:.2f}m²)"


# ==================== FLOW CLASS ====================
@dataclass
class Flow:
    """A stream of walkers sharing entry zones, target zones and a direction"""
    name: str
    direction: Direction
    entries: List[Zone] = field(default_factory=list)
    targets: List[Zone] = field(default_factory=list)


# ==================== ENVIRONMENT CLASS ====================
class WalkwayEnvironment:
    """Read-only description of the walkable region"""

    def __init__(self, walls: Sequence[Segment], flows: Sequence[Flow],
                 timing_lines: Sequence[Segment] = (), name: str = 'custom',
                 grid_resolution: float = 0.5):
        """
        Initialize and validate an environment.

        Args:
            walls: Impassable segments
            flows: Walker streams with their entry and target zones
            timing_lines: Segments whose crossing times are recorded
            name: Label used in reports
            grid_resolution: Cell size of the reachability check, in metres

        Raises:
            ConfigurationError: if the geometry cannot be simulated
        """
        self.name = name
        self.walls: List[Segment] = list(walls)
        self.timing_lines: List[Segment] = list(timing_lines)
        self.flows: Dict[str, Flow] = {}
        for flow in flows:
            if flow.name in self.flows:
                raise ConfigurationError(f"Duplicate flow name '{flow.name}'")
            self.flows[flow.name] = flow
        self.grid_resolution = grid_resolution

        points = [w.start for w in self.walls] + [w.end for w in self.walls]
        for zone in self.entry_zones + self.target_zones:
            points.extend(zone.vertices)
        if not points:
            raise ConfigurationError("Environment has no geometry")
        points = np.array(points)
        self.bounds = {
            'x_min': float(points[:, 0].min()),
            'x_max': float(points[:, 0].max()),
            'y_min': float(points[:, 1].min()),
            'y_max': float(points[:, 1].max()),
        }

        self._validate()

    # --- Queries ---
    @property
    def entry_zones(self) -> List[Zone]:
        return [zone for flow in self.flows.values() for zone in flow.entries]

    @property
    def target_zones(self) -> List[Zone]:
        return [zone for flow in self.flows.values() for zone in flow.targets]

    def get_flow(self, name: str) -> Flow:
        if name not in self.flows:
            raise KeyError(f"Unknown flow '{name}'")
        return self.flows[name]

    def is_in_bounds(self, position: np.ndarray) -> bool:
        """Check if position is within the environment bounding box"""
        x, y = position
        return (self.bounds['x_min'] <= x <= self.bounds['x_max'] and
                self.bounds['y_min'] <= y <= self.bounds['y_max'])

    def move_crosses_wall(self, start: np.ndarray, end: np.ndarray) -> Optional[Segment]:
        for wall in self.walls:
            if wall.crosses(start, end):
                return wall
        return None

    # --- Validation ---
    def _validate(self):
        if not self.flows:
            raise ConfigurationError("Environment needs at least one flow")
        for flow in self.flows.values():
            if not flow.entries:
                raise ConfigurationError(f"Flow '{flow.name}' has no entry zone")
            if not flow.targets:
                raise ConfigurationError(f"Flow '{flow.name}' has no target zone")
            for zone in flow.entries:
                if zone.area <= 1e-9:
                    raise ConfigurationError(f"Entry zone '{zone.name}' has zero area")
                for wall in self.walls:
                    if wall.intersects_zone(zone):
                        raise ConfigurationError(f"Entry zone '{zone.name}' coincides with a wall")
            for zone in flow.targets:
                if zone.area <= 1e-9:
                    raise ConfigurationError(f"Target zone '{zone.name}' has zero area")
        self._check_reachability()

    def _build_reachability_graph(self) -> Tuple[nx.Graph, np.ndarray]:
        """Grid graph over the bounding box; edges never cross a wall"""
        res = self.grid_resolution
        xs = np.arange(self.bounds['x_min'] + res / 2, self.bounds['x_max'], res)
        ys = np.arange(self.bounds['y_min'] + res / 2, self.bounds['y_max'], res)
        if len(xs) == 0:
            xs = np.array([(self.bounds['x_min'] + self.bounds['x_max']) / 2])
        if len(ys) == 0:
            ys = np.array([(self.bounds['y_min'] + self.bounds['y_max']) / 2])

        positions = np.array([[x, y] for x in xs for y in ys])
        graph = nx.Graph()
        for idx in range(len(positions)):
            graph.add_node(idx)

        n_y = len(ys)
        for i in range(len(xs)):
            for j in range(n_y):
                idx = i * n_y + j
                neighbours = []
                if j + 1 < n_y:
                    neighbours.append(idx + 1)
                if i + 1 < len(xs):
                    neighbours.append(idx + n_y)
                for other in neighbours:
                    if self.move_crosses_wall(positions[idx], positions[other]) is None:
                        graph.add_edge(idx, other)
        return graph, positions

    def _visible_node(self, tree: KDTree, positions: np.ndarray, point: np.ndarray) -> Optional[int]:
        k = min(8, len(positions))
        _, indices = tree.query(point, k=k)
        for idx in np.atleast_1d(indices):
            if self.move_crosses_wall(point, positions[idx]) is None:
                return int(idx)
        return None

    def _check_reachability(self):
        graph, positions = self._build_reachability_graph()
        tree = KDTree(positions)

        component_of: Dict[int, int] = {}
        for component_id, component in enumerate(nx.connected_components(graph)):
            for node in component:
                component_of[node] = component_id

        for flow in self.flows.values():
            target_components = set()
            for zone in flow.targets:
                node = self._visible_node(tree, positions, zone.centroid)
                if node is not None:
                    target_components.add(component_of[node])
            for zone in flow.entries:
                node = self._visible_node(tree, positions, zone.centroid)
                if node is None or component_of[node] not in target_components:
                    raise ConfigurationError(
                        f"Entry zone '{zone.name}' cannot reach any target of flow '{flow.name}'")

    # --- Structured description ---
    @classmethod
    def from_description(cls, description: Dict) -> 'WalkwayEnvironment':
        """
        Build an environment from a plain structure:

            {"name": ..., "walls": [[[x1, y1], [x2, y2]], ...],
             "timing_lines": [...],
             "flows": [{"name": ..., "direction": "forward",
                        "entries": {"zone name": [[x, y], ...]},
                        "targets": {"zone name": [[x, y], ...]}}]}
        """
        try:
            walls = [Segment(tuple(a), tuple(b)) for a, b in description.get('walls', [])]
            timing_lines = [Segment(tuple(a), tuple(b)) for a, b in description.get('timing_lines', [])]
            flows = []
            for flow_def in description['flows']:
                flows.append(Flow(
                    name=flow_def['name'],
                    direction=Direction(flow_def.get('direction', 'forward')),
                    entries=[Zone(n, v) for n, v in flow_def.get('entries', {}).items()],
                    targets=[Zone(n, v) for n, v in flow_def.get('targets', {}).items()],
                ))
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"Malformed environment description: {exc}") from exc
        return cls(walls, flows, timing_lines, name=description.get('name', 'custom'))

    def describe(self) -> Dict:
        """Inverse of ``from_description``; also consumed by the renderer"""
        return {
            'name': self.name,
            'walls': [w.as_list() for w in self.walls],
            'timing_lines': [t.as_list() for t in self.timing_lines],
            'flows': [
                {
                    'name': flow.name,
                    'direction': flow.direction.value,
                    'entries': {z.name: z.as_list() for z in flow.entries},
                    'targets': {z.name: z.as_list() for z in flow.targets},
                }
                for flow in self.flows.values()
            ],
        }

    def __repr__(self):
        return (f"WalkwayEnvironment('{self.name}', walls={len(self.walls)}, "
                f"flows={list(self.flows)})")


# ==================== SCENARIO BUILDERS ====================

def _swap_xy(points):
    return [(y, x) for x, y in points]


def build_corridor_environment(length: float = 25.0, width: float = 6.0,
                               vertical: bool = False) -> WalkwayEnvironment:
    """
    Straight walkway with a flow entering at each end.

    Walkers spawn just before x = 0 (or x = length) and arrive once they pass
    the far end, so the measured section is ``length`` metres long. With
    ``vertical`` the whole layout is mirrored about the line y = x.
    """
    margin = 1.0
    depth = 0.5
    edge = 0.5

    def seg(a, b):
        if vertical:
            a, b = (a[1], a[0]), (b[1], b[0])
        return Segment(a, b)

    def rect(name, x0, x1):
        corners = [(x0, edge), (x1, edge), (x1, width - edge), (x0, width - edge)]
        return Zone(name, _swap_xy(corners) if vertical else corners)

    walls = [
        seg((-margin, 0.0), (length + margin, 0.0)),
        seg((-margin, width), (length + margin, width)),
        seg((-margin, 0.0), (-margin, width)),
        seg((length + margin, 0.0), (length + margin, width)),
    ]
    timing_lines = [
        seg((0.0, 0.0), (0.0, width)),
        seg((length, 0.0), (length, width)),
    ]
    flows = [
        Flow('forward', Direction.FORWARD,
             entries=[rect('forward_entry', -depth, 0.0)],
             targets=[rect('forward_target', length, length + depth)]),
        Flow('backward', Direction.BACKWARD,
             entries=[rect('backward_entry', length, length + depth)],
             targets=[rect('backward_target', -depth, 0.0)]),
    ]
    name = 'corridor_vertical' if vertical else 'corridor'
    return WalkwayEnvironment(walls, flows, timing_lines, name=name)


def build_diagonal_environment() -> WalkwayEnvironment:
    """Walkway running at 45 degrees between two slanted walls"""

    def st(s, t):
        # s runs along the walkway (x + y), t across it (y - x)
        return ((s - t) / 2.0, (s + t) / 2.0)

    def band(name, s0, s1, half=3.3):
        return Zone(name, [st(s0, -half), st(s1, -half), st(s1, half), st(s0, half)])

    walls = [Segment((0.0, 4.0), (12.0, 16.0)), Segment((4.0, 0.0), (16.0, 12.0))]
    timing_lines = [Segment((1.0, 5.0), (5.0, 1.0)), Segment((11.0, 15.0), (15.0, 11.0))]
    flows = [
        Flow('forward', Direction.FORWARD,
             entries=[band('forward_entry', 4.0, 5.0)],
             targets=[band('forward_target', 27.0, 28.0)]),
        Flow('backward', Direction.BACKWARD,
             entries=[band('backward_entry', 27.0, 28.0)],
             targets=[band('backward_target', 4.0, 5.0)]),
    ]
    return WalkwayEnvironment(walls, flows, timing_lines, name='diagonal')


def build_crossroads_environment() -> WalkwayEnvironment:
    """Two 6m walkways crossing at right angles, one flow per direction"""
    walls = [Segment(a, b) for a, b in [
        # East-west walkway
        ((-1.0, 12.5), (11.5, 12.5)), ((19.5, 12.5), (32.0, 12.5)),
        ((-1.0, 18.5), (11.5, 18.5)), ((19.5, 18.5), (32.0, 18.5)),
        ((-1.0, 12.5), (-1.0, 18.5)), ((32.0, 12.5), (32.0, 18.5)),
        # North-south walkway
        ((12.5, -1.0), (12.5, 11.5)), ((12.5, 19.5), (12.5, 32.0)),
        ((18.5, -1.0), (18.5, 11.5)), ((18.5, 19.5), (18.5, 32.0)),
        ((12.5, -1.0), (18.5, -1.0)), ((12.5, 32.0), (18.5, 32.0)),
        # Corner chamfers
        ((12.5, 11.5), (11.5, 12.5)), ((18.5, 11.5), (19.5, 12.5)),
        ((19.5, 18.5), (18.5, 19.5)), ((11.5, 18.5), (12.5, 19.5)),
    ]]
    timing_lines = [Segment(a, b) for a, b in [
        ((3.0, 12.5), (3.0, 18.5)), ((28.0, 12.5), (28.0, 18.5)),
        ((12.5, 3.0), (18.5, 3.0)), ((12.5, 28.0), (18.5, 28.0)),
    ]]
    flows = [
        Flow('eastbound', Direction.FORWARD,
             entries=[Zone.rectangle('east_entry', -0.5, 13.0, 0.5, 18.0)],
             targets=[Zone.rectangle('east_target', 30.0, 13.0, 31.0, 18.0)]),
        Flow('westbound', Direction.BACKWARD,
             entries=[Zone.rectangle('west_entry', 30.5, 13.0, 31.5, 18.0)],
             targets=[Zone.rectangle('west_target', 0.0, 13.0, 1.0, 18.0)]),
        Flow('northbound', Direction.FORWARD,
             entries=[Zone.rectangle('north_entry', 13.0, -0.5, 18.0, 0.5)],
             targets=[Zone.rectangle('north_target', 13.0, 30.0, 18.0, 31.0)]),
        Flow('southbound', Direction.BACKWARD,
             entries=[Zone.rectangle('south_entry', 13.0, 30.5, 18.0, 31.5)],
             targets=[Zone.rectangle('south_target', 13.0, 0.0, 18.0, 1.0)]),
    ]
    return WalkwayEnvironment(walls, flows, timing_lines, name='crossroads')


def build_environment(name: str, length: float = 25.0, width: float = 6.0) -> WalkwayEnvironment:
    """Build one of the named scenario environments"""
    if name == 'corridor':
        return build_corridor_environment(length, width)
    if name == 'corridor_vertical':
        return build_corridor_environment(length, width, vertical=True)
    if name == 'diagonal':
        return build_diagonal_environment()
    if name == 'crossroads':
        return build_crossroads_environment()
    raise ConfigurationError(f"Unknown environment '{name}'")
