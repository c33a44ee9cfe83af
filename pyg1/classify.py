"""Classification of the interfaces, boundary edges and vertices of a
multipatch domain and the number of G1 functions each of them carries.

For an interface with spline degree `p`, regularity `r` and `n` elements, the
G1 interface space consists of a "plus" space of dimension
``(p-r-1)*(n-1) + p + 1`` and a "minus" space of one less, minus the
functions which are counted as vertex functions.
"""
from collections import namedtuple

import numpy as np

from .policy import TopologyPolicy, VertexKind
from .topology import ConfigurationError, side_kv, side_point

ZERO_TOL = 1e-25

InterfaceInfo = namedtuple('InterfaceInfo', 'p r n kinks num_dofs size_plus')
BoundaryEdgeInfo = namedtuple('BoundaryEdgeInfo', 'p r n size num_boundary num_edge size_plus')
VertexInfo = namedtuple('VertexInfo', 'kind num_free num_boundary corners')


def _transversal(geo, side, t):
    # derivative of the geometry across the given side at its start/end point
    jac = geo.jacobian(*side_point(geo, side, t))
    return jac[:, 1 - side // 2]

def interface_kinks(mesh, intf):
    """Detect kinks at the start and end of an interface.

    A kink is present where the derivatives of the two patch geometries across
    the interface are not parallel.

    Returns:
        a pair of bools for the start and the end vertex of the interface (in
        the edge direction of its first side)
    """
    geos = mesh.geos()
    geo1, geo2 = geos[intf.first.patch], geos[intf.second.patch]
    if geo1.dim != 2:
        raise ConfigurationError('kink detection requires planar geometries')
    kinks = []
    for t in (0, 1):
        t2 = 1 - t if intf.flip else t
        M = np.column_stack((_transversal(geo1, intf.first.side, t),
                             _transversal(geo2, intf.second.side, t2)))
        kinks.append(np.linalg.det(M)**2 > ZERO_TOL)
    return tuple(bool(k) for k in kinks)

def classify_interface(mesh, kvs, intf, policy):
    """Compute the :class:`InterfaceInfo` of a single interface."""
    kv1 = side_kv(kvs[intf.first.patch], intf.first.side)
    kv2 = side_kv(kvs[intf.second.patch], intf.second.side)
    if policy.two_patch:
        kinks = interface_kinks(mesh, intf)
        p = min(kv1.p, kv2.p)
        r = min(p - kv1.multiplicity(kv1.p + 1), p - 2)
        n = min(kv1.numspans, kv2.numspans)
        excluded = policy.excluded_interface_functions + sum(kinks)
        extra = 3 if (policy.inner_knot_mult > 0 and p - 1 - r == 1) else 0
    else:
        p, r, n = kv1.p, 1, kv1.numspans
        excluded = policy.excluded_interface_functions
        extra = 0
        kinks = (False, False)     # not detected in the general treatment

    if p < 2:
        raise ConfigurationError('G1 interface spaces require spline degree at least 2, got %d' % p)
    num_dofs = 2 * (p - r - 1) * (n - 1) + 2 * p + 1 - excluded + 2 * extra
    size_plus = (p - r - 1) * (n - 1) + p + 1 + extra
    if num_dofs < 0:
        raise ConfigurationError('interface between patches %d and %d is too coarse (p=%d, n=%d)'
                % (intf.first.patch, intf.second.patch, p, n))
    return InterfaceInfo(p, r, n, kinks, num_dofs, size_plus)

def classify_boundary_edge(kvs, side, policy):
    """Compute the :class:`BoundaryEdgeInfo` of a single boundary side."""
    kv = side_kv(kvs[side.patch], side.side)
    size = kv.numdofs
    if policy.two_patch:
        p, r, n = kv.p, None, kv.numspans
        num_bdy = 2 * size - 8 if policy.neumann_bdy else size - 4
        num_edge = 0 if policy.neumann_bdy else size - 4
        size_plus = size - 4
    else:
        p, r, n = kv.p, 1, kv.numspans
        size_plus = (p - r - 1) * (n - 1) + p + 1
        if policy.neumann_bdy:
            num_bdy = 2 * (p - r - 1) * (n - 1) + 2 * p + 1 - 10
            num_edge = 0
        else:
            num_bdy = size_plus - 6
            num_edge = (p - r - 1) * (n - 1) + p - 4
    if num_bdy < 0 or num_edge < 0:
        raise ConfigurationError('boundary side %d of patch %d is too coarse (p=%d, size=%d)'
                % (side.side, side.patch, kv.p, size))
    return BoundaryEdgeInfo(p, r, n, size, num_bdy, num_edge, size_plus)

def vertex_kind(corners, patch_graph):
    """Determine the :class:`.VertexKind` of a vertex from its adjoining
    patch corners and the interface graph of the domain."""
    if len(corners) == 0:
        raise ConfigurationError('vertex without adjoining patches')
    if len(corners) == 1:
        return VertexKind.BOUNDARY
    patches = set(pc.patch for pc in corners)
    num_interfaces = patch_graph.subgraph(patches).number_of_edges()
    if num_interfaces == len(corners):
        return VertexKind.INTERIOR
    else:
        return VertexKind.INTERFACE_BOUNDARY


class Classification:
    """Result of classifying a multipatch domain.

    Attributes:
        interfaces (list): :class:`InterfaceInfo` per interface
        boundary_edges (list): :class:`BoundaryEdgeInfo` per boundary side
        vertices (list): :class:`VertexInfo` per vertex
        endpoints (list): pairs of start/end vertex indices per interface
        policy (:class:`.TopologyPolicy`): the policy used
    """
    def __init__(self, interfaces, boundary_edges, vertices, endpoints, policy):
        self.interfaces = interfaces
        self.boundary_edges = boundary_edges
        self.vertices = vertices
        self.endpoints = endpoints
        self.policy = policy

    def vertex_kinds(self):
        return [v.kind for v in self.vertices]

    def interface_counts(self):
        return [info.num_dofs for info in self.interfaces]

    def edge_counts(self):
        return [info.num_edge for info in self.boundary_edges]

    def boundary_edge_counts(self):
        return [info.num_boundary for info in self.boundary_edges]

    def vertex_counts(self):
        return [info.num_free for info in self.vertices]

    def boundary_vertex_counts(self):
        return [info.num_boundary for info in self.vertices]


def classify_topology(mesh, kvs, policy=None):
    """Classify all interfaces, boundary edges and vertices of `mesh`.

    Args:
        mesh (:class:`.PatchMesh`): the multipatch domain
        kvs (seq): the tensor product bases of the patches, one tuple
            ``(kv_v, kv_u)`` per patch
        policy (:class:`.TopologyPolicy`): the classification policy

    Returns:
        :class:`Classification`
    """
    if policy is None:
        policy = TopologyPolicy()
    if len(kvs) != mesh.numpatches:
        raise ConfigurationError('got %d bases for %d patches' % (len(kvs), mesh.numpatches))

    interfaces = mesh.interface_list()
    if policy.two_patch and len(interfaces) != 1:
        raise ConfigurationError('two-patch treatment needs exactly one interface, found %d'
                % len(interfaces))

    intf_info = [classify_interface(mesh, kvs, intf, policy) for intf in interfaces]
    endpoints = [mesh.interface_endpoints(i) for i in range(len(interfaces))]
    bdy_info = [classify_boundary_edge(kvs, side, policy) for side in mesh.boundary_list()]

    # vertices with a kink on one of their interfaces
    kinked = set()
    for info, (v0, v1) in zip(intf_info, endpoints):
        if info.kinks[0]: kinked.add(v0)
        if info.kinks[1]: kinked.add(v1)

    graph = mesh.patch_graph()
    vtx_info = []
    for v, corners in enumerate(mesh.vertex_list()):
        kind = vertex_kind(corners, graph)
        vp = policy.vertex_policy(kind, kink=(v in kinked))
        vtx_info.append(VertexInfo(kind, vp.free, vp.boundary, tuple(corners)))

    return Classification(intf_info, bdy_info, vtx_info, endpoints, policy)
