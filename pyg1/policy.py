"""Policy tables for splitting G1 functions into free and boundary degrees of freedom.

The number of vertex functions and the way the functions near the ends of
interfaces and boundary edges are assigned to free or boundary rows are fixed
policy constants. They depend only on the kind of the vertex and on two
switches:

- `two_patch`: the specialized treatment of a single interface between two
  patches, where the first and last functions of the interface spaces become
  boundary vertex functions and kinks of the interface are taken into account;
- `neumann_bdy`: weak treatment of the boundary, where all boundary edge and
  boundary vertex functions carry prescribed data.
"""
from collections import namedtuple
from enum import IntEnum


class VertexKind(IntEnum):
    """Topological kind of a vertex, with the numeric codes used for output."""
    BOUNDARY = -1           # only a single patch adjoins the vertex
    INTERIOR = 0            # all adjoining patches are joined by interfaces
    INTERFACE_BOUNDARY = 1  # on the boundary, but with interfaces through it


VertexPolicy = namedtuple('VertexPolicy', 'free boundary')


class TopologyPolicy:
    """Value object collecting the switches which control the classification
    of a multipatch domain.

    Args:
        two_patch (bool): use the specialized two-patch treatment
        neumann_bdy (bool): weak ("Neumann") boundary treatment
        isogeometric (bool): whether the interface functions live in the same
            per-patch bases as the interior functions; otherwise, separate
            interface bases have to be supplied
        inner_knot_mult (int): multiplicity of an additional inner knot of the
            interface spaces; adds three functions to each half of the
            interface space in the two-patch treatment
    """
    def __init__(self, two_patch=False, neumann_bdy=False, isogeometric=True, inner_knot_mult=0):
        self.two_patch = bool(two_patch)
        self.neumann_bdy = bool(neumann_bdy)
        self.isogeometric = bool(isogeometric)
        self.inner_knot_mult = int(inner_knot_mult)

    def __repr__(self):
        return 'TopologyPolicy(two_patch=%r, neumann_bdy=%r, isogeometric=%r, inner_knot_mult=%r)' % (
                self.two_patch, self.neumann_bdy, self.isogeometric, self.inner_knot_mult)

    def __eq__(self, other):
        return isinstance(other, TopologyPolicy) and vars(self) == vars(other)

    def vertex_policy(self, kind, kink=False):
        """Return the :class:`VertexPolicy` (number of free and boundary
        functions) for a vertex of the given :class:`VertexKind`.

        `kink` indicates that an interface through the vertex has a kink
        there; this adds a boundary function in the two-patch treatment.
        """
        kind = VertexKind(kind)
        if not self.two_patch:
            return _GENERAL_VERTEX_POLICY[kind]
        if kind == VertexKind.INTERIOR:
            return VertexPolicy(0, 0)
        if self.neumann_bdy:
            return VertexPolicy(0, 4)
        if kind == VertexKind.BOUNDARY:
            return VertexPolicy(1, 3)
        return VertexPolicy(0, 2 + int(kink))

    @property
    def redirects_interface_ends(self):
        """Whether the end functions of the interface spaces are reassigned
        to boundary vertex rows."""
        return self.two_patch and not self.neumann_bdy

    @property
    def excluded_interface_functions(self):
        """Number of functions removed from the interface space because they
        are counted as vertex functions (without kinks)."""
        if self.two_patch:
            return 8 if self.neumann_bdy else 4
        return 10

    def boundary_edge_split(self, size_plus):
        """Local function index from which on boundary edge functions are
        free edge functions, or `None` if all of them are boundary functions."""
        if self.neumann_bdy:
            return None
        return size_plus if self.two_patch else size_plus - 6


_GENERAL_VERTEX_POLICY = {
    VertexKind.BOUNDARY:            VertexPolicy(1, 6),
    VertexKind.INTERIOR:            VertexPolicy(6, 0),
    VertexKind.INTERFACE_BOUNDARY:  VertexPolicy(3, 6),
}
