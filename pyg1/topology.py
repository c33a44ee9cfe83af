"""Connectivity of planar multipatch domains.

A :class:`PatchMesh` stores the patches of a 2D multipatch geometry together
with their shared vertices, the conforming interfaces between patch sides and
the sides which lie on the outer boundary.

Conventions:

- a patch is a pair ``(kvs, geo)``, where ``kvs = (kv_v, kv_u)`` is the tensor
  product basis (ZYX order) and `geo` is a :class:`.BSplineFunc` geometry;
- sides are numbered ``0 = bottom (v=0)``, ``1 = top (v=1)``,
  ``2 = left (u=0)``, ``3 = right (u=1)``, see :func:`bdspec_to_int`;
- corners are numbered ``0 = bottom-left``, ``1 = bottom-right``,
  ``2 = top-left``, ``3 = top-right``.
"""
import itertools
from collections import namedtuple

import numpy as np
import scipy.spatial
import networkx as nx


class ConfigurationError(ValueError):
    """Raised when the topology of a multipatch domain cannot be classified."""
    pass


PatchSide = namedtuple('PatchSide', 'patch side')
PatchCorner = namedtuple('PatchCorner', 'patch corner')
BoundaryInterface = namedtuple('BoundaryInterface', 'first second flip')

# corners at the start and end of each side, in increasing edge parameter
_SIDE_CORNERS = ((0, 1), (2, 3), (0, 2), (1, 3))

def bdspec_to_int(bdspec):
    """Side index (0..3) of a boundary specification ``((axis, side),)``."""
    (axis, side), = bdspec
    return 2 * axis + side

def int_to_bdspec(b):
    return ((b // 2, b % 2),)

def corners(geo, ravel=False):
    """Physical locations of the four corners of a patch, in corner order if
    `ravel` is true and as a `2 x 2 x dim` array otherwise."""
    X = geo.grid_eval(geo.support)
    return X.reshape((-1, geo.dim)) if ravel else X

def corner_sides(corner):
    """The two sides of a patch which meet in the given corner."""
    return (corner // 2, 2 + corner % 2)

def side_kv(kvs, side):
    """Return the univariate knot vector which runs along the given side."""
    return kvs[1 - side // 2]

def side_indices(kvs, side, layer=0):
    """Raveled local indices of the `layer`-th row of coefficients parallel
    to `side`, ordered along the side.

    ``layer=0`` is the row of coefficients on the side itself, ``layer=1``
    the next row towards the inside of the patch, and so on.
    """
    n_v, n_u = kvs[0].numdofs, kvs[1].numdofs
    if side < 2:
        j = layer if side == 0 else n_v - 1 - layer
        assert 0 <= j < n_v, 'invalid layer'
        return j * n_u + np.arange(n_u)
    else:
        i = layer if side == 2 else n_u - 1 - layer
        assert 0 <= i < n_u, 'invalid layer'
        return np.arange(n_v) * n_u + i

def side_point(geo, side, t):
    """Parameter coordinates (in xy order) of the start (`t=0`) or end
    (`t=1`) point of a side."""
    supp_v, supp_u = geo.support
    edge, fixed = (supp_u, supp_v) if side < 2 else (supp_v, supp_u)
    s, f = edge[t], fixed[side % 2]
    return (s, f) if side < 2 else (f, s)

################################################################################
# interface detection
################################################################################

def _bounding_rect(geo):
    lower, upper = zip(*geo.bounding_box())
    return scipy.spatial.Rectangle(lower, upper)

def _curves_match(C1, C2, num=4):
    # compare two curves at a few points; returns (match, flip)
    if C1.dim != C2.dim or not np.allclose(C1.support, C2.support):
        return False, False
    (a, b), = C1.support
    t = np.linspace(a, b, num)
    X = C1.grid_eval((t,))
    for flip in (False, True):
        s = np.ascontiguousarray(t[::-1]) if flip else t
        if np.allclose(X, C2.grid_eval((s,))):
            return True, flip
    return False, False

def _matching_sides(geo1, geo2):
    sides1 = [geo1.boundary(int_to_bdspec(b)) for b in range(4)]
    sides2 = [geo2.boundary(int_to_bdspec(b)) for b in range(4)]
    result = []
    for b1, b2 in itertools.product(range(4), repeat=2):
        match, flip = _curves_match(sides1[b1], sides2[b2])
        if match:
            result.append((b1, b2, flip))
    return result

def detect_interfaces(patches):
    """Find all pairs of patch sides which coincide geometrically.

    Args:
        patches: a list of patches in the form `(kvs, geo)`

    Returns:
        A pair `(connected, interfaces)`, where `connected` is a `bool`
        describing whether the detected patch graph is connected, and
        `interfaces` is a list of the detected interfaces, each of the form
        `(p1, b1, p2, b2, flip)` with side indices `b1`, `b2`.
    """
    rects = [_bounding_rect(geo) for (_, geo) in patches]
    sizes = [R.max_distance_rectangle(R) for R in rects]
    G = nx.Graph()
    G.add_nodes_from(range(len(patches)))
    interfaces = []
    for p1, p2 in itertools.combinations(range(len(patches)), 2):
        # only patches whose bounding boxes touch can share a side
        if rects[p1].min_distance_rectangle(rects[p2]) >= 1e-10 * max(sizes[p1], sizes[p2]):
            continue
        for (b1, b2, flip) in _matching_sides(patches[p1][1], patches[p2][1]):
            interfaces.append((p1, b1, p2, b2, flip))
            G.add_edge(p1, p2)
    return nx.is_connected(G), interfaces

################################################################################

# A PatchMesh holds
#
# - vertices: the physical locations of the topological vertices;
#
# - patches: tuples ((kvs, geo), sides), where sides[b] is the pair of
#   vertex indices at the start and end of side b in its edge direction;
#
# - interfaces: interfaces[(p0, b0)] == ((p1, b1), flip) if side b0 of
#   patch p0 coincides with side b1 of patch p1, with opposite directions
#   if flip is true; stored in both directions;
#
# - outer_boundaries: the set of (p, b) sides which carry boundary functions.

class PatchMesh:
    """A planar multipatch domain with automatically detected interfaces.

    All sides which are not part of an interface form the outer boundary.

    Args:
        patches: a list of patches in the form `(kvs, geo)`

    Raises:
        :class:`ConfigurationError` if a patch is not a planar surface or the
        patches are not connected through interfaces
    """
    def __init__(self, patches=None):
        self.vertices = []
        self.patches = []
        self.interfaces = dict()
        self.outer_boundaries = set()
        self._vertex_cache = None
        if not patches:
            return

        for (kvs, geo) in patches:
            if len(kvs) != 2 or geo.sdim != 2 or geo.dim != 2:
                raise ConfigurationError('only planar 2D patches are supported')
        connected, interfaces = detect_interfaces(patches)
        if not connected:
            raise ConfigurationError('patch graph is not connected')

        for patch in patches:
            vtx = [self.add_vertex(X) for X in corners(patch[1], ravel=True)]
            self.add_patch(patch, tuple((vtx[c0], vtx[c1]) for (c0, c1) in _SIDE_CORNERS))
        self.outer_boundaries = set((p, b) for p in range(self.numpatches) for b in range(4))
        for intf in interfaces:
            self.add_interface(*intf)

    @property
    def numpatches(self):
        return len(self.patches)

    def geos(self):
        return [geo for ((_, geo), _) in self.patches]

    def kvs(self):
        return [kvs for ((kvs, _), _) in self.patches]

    def find_vertex(self, pos, tol=1e-14):
        """Index of the vertex at `pos`, or `None`."""
        for (i, X) in enumerate(self.vertices):
            if np.linalg.norm(X - pos) < tol:
                return i
        return None

    def add_vertex(self, pos):
        """Index of the vertex at `pos`, which is created if necessary."""
        i = self.find_vertex(pos)
        if i is None:
            self.vertices.append(np.asarray(pos, dtype=float))
            i = len(self.vertices) - 1
        return i

    def add_patch(self, patch, sides):
        self.patches.append((patch, sides))
        self._vertex_cache = None

    def add_interface(self, p0, b0, p1, b1, flip):
        """Join side b0 of patch p0 with side b1 of patch p1."""
        self.interfaces[(p0, b0)] = ((p1, b1), flip)
        self.interfaces[(p1, b1)] = ((p0, b0), flip)
        self.outer_boundaries -= {(p0, b0), (p1, b1)}
        self._vertex_cache = None

    def remove_boundary(self, sides):
        """Remove the given `(patch, side)` pairs from the outer boundary.

        The removed sides carry no boundary or interface functions and are
        treated as unconstrained.
        """
        sides = set(tuple(s) for s in sides)
        unknown = sides - self.outer_boundaries
        if unknown:
            raise ValueError('not on the outer boundary: %s' % (sorted(unknown),))
        self.outer_boundaries -= sides
        self._vertex_cache = None

    def boundaries(self, p):
        """Get the start and end vertex of the four sides of patch `p`."""
        return self.patches[p][1]

    def get_matching_interface(self, p, boundary):
        """Get the side which is connected to the given side, or `None`."""
        assert 0 <= p < len(self.patches)
        assert 0 <= boundary < 4
        matching = self.interfaces.get((p, boundary))
        if matching:
            return matching[0]
        else:
            return None     # no matching side - must be on the boundary

    def is_constrained(self, p, b):
        """Whether side `b` of patch `p` is an interface or a boundary side."""
        return (p, b) in self.interfaces or (p, b) in self.outer_boundaries

    def corner_vertex(self, p, c):
        """Index of the vertex at corner `c` of patch `p`."""
        side = c // 2       # bottom or top
        return self.boundaries(p)[side][c % 2]

    def interface_list(self):
        """Return the list of interfaces as :class:`BoundaryInterface` tuples,
        sorted by the first patch and side."""
        return [BoundaryInterface(PatchSide(*S0), PatchSide(*S1), flip)
                for S0, (S1, flip) in sorted(self.interfaces.items())
                if S0 < S1]

    def boundary_list(self):
        """Return the sorted list of outer boundary sides as :class:`PatchSide` tuples."""
        return [PatchSide(p, b) for (p, b) in sorted(self.outer_boundaries)]

    def _vertex_data(self):
        if self._vertex_cache is None:
            adjoining = [[] for _ in self.vertices]
            for p in range(self.numpatches):
                for c in range(4):
                    adjoining[self.corner_vertex(p, c)].append(PatchCorner(p, c))
            # only vertices on an interface or a boundary side carry functions
            active = [v for v in range(len(self.vertices))
                    if any(self.is_constrained(pc.patch, b)
                           for pc in adjoining[v] for b in corner_sides(pc.corner))]
            self._vertex_cache = (active, [adjoining[v] for v in active])
        return self._vertex_cache

    def vertex_list(self):
        """Return, for each vertex which touches an interface or a boundary
        side, the list of :class:`PatchCorner` tuples adjoining it.

        The position in this list is the vertex index used by the G1 system.
        """
        return self._vertex_data()[1]

    def vertex_position(self, k):
        """Physical location of the `k`-th vertex of :meth:`vertex_list`."""
        active = self._vertex_data()[0]
        if not 0 <= k < len(active):
            raise ValueError('invalid vertex index %d' % k)
        return self.vertices[active[k]]

    def interface_endpoints(self, i):
        """Return the indices (into :meth:`vertex_list`) of the start and end
        vertex of the `i`-th interface, in the edge direction of its first side."""
        intf = self.interface_list()[i]
        active = self._vertex_data()[0]
        start, end = self.boundaries(intf.first.patch)[intf.first.side]
        return (active.index(start), active.index(end))

    def patch_graph(self, patches=None):
        """Return a :class:`networkx.MultiGraph` whose nodes are patches and
        whose edges are interfaces (keyed by interface index).

        If `patches` is given, only these patches and the interfaces between
        them are included.
        """
        G = nx.MultiGraph()
        nodes = range(self.numpatches) if patches is None else patches
        G.add_nodes_from(nodes)
        for i, intf in enumerate(self.interface_list()):
            p0, p1 = intf.first.patch, intf.second.patch
            if p0 in G and p1 in G:
                G.add_edge(p0, p1, key=i)
        return G

    def sanity_check(self):
        """Assert the consistency of the connectivity data."""
        for (p, b), ((p1, b1), flip) in self.interfaces.items():
            assert self.get_matching_interface(p1, b1) == (p, b)
            # both sides join the same two vertices
            v, v1 = self.boundaries(p)[b], self.boundaries(p1)[b1]
            assert tuple(v) == (tuple(v1)[::-1] if flip else tuple(v1))
            assert (p, b) not in self.outer_boundaries

        for p, ((kvs, geo), sides) in enumerate(self.patches):
            X = corners(geo, ravel=True)
            for c in range(4):
                assert np.allclose(self.vertices[self.corner_vertex(p, c)], X[c])
            # adjacent sides share their corner vertex
            for (b, t) in ((0, 0), (1, 1)):
                assert sides[b][0] == sides[2][t] and sides[b][1] == sides[3][t]
