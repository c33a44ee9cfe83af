"""The G1 degree-of-freedom consolidation system.

A :class:`G1System` classifies the interfaces, boundary edges and vertices of a
:class:`.PatchMesh`, lays out the global index space of the G1 functions and
collects the sparse transformation matrix `D` which maps the global degrees of
freedom to the coefficients of the per-patch local bases.

The G1 basis functions themselves are supplied by the caller. Each one is
inserted as a "basis function as geometry", i.e., one spline function per
patch it touches, whose coefficients become one row of `D`::

    S = G1System(mesh)
    for (funcs, i, k) in interface_functions:
        S.insert_interface_edge(funcs, i, k)
    ...
    S.finalize(g1)
    x = S.solve(K, f)
    fields = sum_contributions(S.construct_solution(x))
"""
import numpy as np
import scipy.sparse

from . import bspline, reconstruct, solvers
from .bspline import BSplineFunc
from .classify import classify_topology
from .offsets import Category, DofLayout, IndexRangeError
from .policy import TopologyPolicy
from .topology import ConfigurationError
from .transform import NotFinalizedError, TransformBuilder, finalize_transform


def _as_sequence(funcs):
    if isinstance(funcs, (BSplineFunc, np.ndarray)):
        return (funcs,)
    return tuple(funcs)

def _coefficients(f, n):
    # raveled coefficient vector of a scalar function over a basis of size n
    if isinstance(f, BSplineFunc):
        if not f.is_scalar():
            raise ValueError('basis functions must be scalar-valued')
        c = f.coeffs.ravel()
    else:
        c = np.asarray(f, dtype=float).ravel()
    if c.shape != (n,):
        raise ValueError('expected %d coefficients, got %d' % (n, c.size))
    return c

def _check_entity(e, num, what):
    if not 0 <= e < num:
        raise IndexRangeError('%s %d out of range (%d %ss)' % (what, e, num, what))


class G1System:
    """Global numbering and transformation matrix of a G1 multipatch space.

    Args:
        mesh (:class:`.PatchMesh`): the multipatch domain
        kvs (seq): the tensor product bases of the patches; by default, those
            stored in `mesh`
        policy (:class:`.TopologyPolicy`): how to split the functions into
            free and boundary degrees of freedom. Instead of a policy, its
            keyword arguments (`two_patch`, `neumann_bdy`, ...) may be passed
            directly.
        interface_kvs (seq): separate per-patch bases in which the interface
            functions live; required if and only if the policy is not
            isogeometric
        verbose (bool): print a summary of the classification and of the
            finalized matrices

    The system goes through two phases: while building, the ``insert_*``
    methods add rows to `D`; :meth:`finalize` closes the building phase
    exactly once, after which the matrices can be queried and systems solved.
    """
    def __init__(self, mesh, kvs=None, policy=None, interface_kvs=None, verbose=False, **policy_kwargs):
        if policy is None:
            policy = TopologyPolicy(**policy_kwargs)
        elif policy_kwargs:
            raise TypeError('pass either a policy or policy keyword arguments, not both')
        if kvs is None:
            kvs = mesh.kvs()
        if policy.isogeometric and interface_kvs is not None:
            raise ConfigurationError('interface bases given for an isogeometric layout')
        if not policy.isogeometric:
            if interface_kvs is None:
                raise ConfigurationError('non-isogeometric layout requires interface bases')
            if len(interface_kvs) != mesh.numpatches:
                raise ConfigurationError('got %d interface bases for %d patches'
                        % (len(interface_kvs), mesh.numpatches))
            interface_kvs = [tuple(k) for k in interface_kvs]

        self.mesh = mesh
        self.kvs = [tuple(k) for k in kvs]
        self.interface_kvs = interface_kvs
        self.policy = policy
        self.verbose = verbose

        self.classification = classify_topology(mesh, self.kvs, policy)
        self.layout = DofLayout.from_classification(self.classification, self.kvs, interface_kvs)
        self._interfaces = mesh.interface_list()
        self._builder = TransformBuilder((self.layout.total, self.layout.dim_K))
        self._T = None

        if verbose:
            self.print_summary()

    ## sizes and classification results

    @property
    def dim_K(self):
        return self.layout.dim_K

    @property
    def dim_G1_Dofs(self):
        return self.layout.dim_G1_Dofs

    @property
    def dim_G1_Bdy(self):
        return self.layout.dim_G1_Bdy

    def num_basis_functions(self):
        """Offset table of the interior bases of the patches."""
        return self.layout[Category.INTERIOR]

    def num_basis_functions_interface(self):
        """Offset table of the interface bases of the patches."""
        return self.layout[Category.INTERFACE_INTERIOR]

    def num_interface_functions(self):
        return self.layout[Category.INTERFACE]

    def num_edge_functions(self):
        return self.layout[Category.EDGE]

    def num_vertex_functions(self):
        return self.layout[Category.VERTEX]

    def num_boundary_edge_functions(self):
        return self.layout[Category.BOUNDARY_EDGE]

    def num_boundary_vertex_functions(self):
        return self.layout[Category.BOUNDARY_VERTEX]

    def kind_of_vertex(self):
        """List of the :class:`.VertexKind` of all vertices."""
        return self.classification.vertex_kinds()

    def boundary_size(self):
        """Number of boundary functions, i.e., the length of `g1`."""
        return self.layout.dim_G1_Bdy

    def size_plus_interface(self, i):
        """Dimension of the "plus" space of interface `i`."""
        _check_entity(i, len(self.classification.interfaces), 'interface')
        return self.classification.interfaces[i].size_plus

    def size_plus_boundary(self, b):
        """Dimension of the "plus" space of boundary edge `b`."""
        _check_entity(b, len(self.classification.boundary_edges), 'boundary edge')
        return self.classification.boundary_edges[b].size_plus

    def kinks(self, i):
        """Kinks at the start and end vertex of interface `i`."""
        _check_entity(i, len(self.classification.interfaces), 'interface')
        return self.classification.interfaces[i].kinks

    def print_summary(self):
        layout = self.layout
        names = ('interface', 'edge', 'vertex', 'boundary edge',
                 'boundary vertex', 'interior', 'interface interior')
        print('G1 system with %d patches, %s' % (self.mesh.numpatches, self.policy))
        for c, name in enumerate(names):
            print('  %-20s %s' % (name + ':', layout[c].offsets.tolist()))
        print('  vertex kinds:        %s' % [int(k) for k in self.kind_of_vertex()])
        print('  interface plus size: %s' % [info.size_plus for info in self.classification.interfaces])
        print('  dim_G1_Dofs = %d, dim_G1_Bdy = %d, dim_K = %d'
                % (layout.dim_G1_Dofs, layout.dim_G1_Bdy, layout.dim_K))
        if self._T is not None:
            T = self._T
            print('  D: %s, nnz = %d; D0: nnz = %d; Dboundary: nnz = %d'
                    % (T.D.shape, T.D.nnz, T.D0.nnz, T.Dboundary.nnz))

    ## building phase

    def _check_building(self):
        if self._T is not None:
            raise RuntimeError('G1 system has already been finalized')

    def _insert_row(self, row, funcs, patches, interface=False):
        funcs = _as_sequence(funcs)
        if len(funcs) != len(patches):
            raise ValueError('expected one function for each of the %d patches, got %d'
                    % (len(patches), len(funcs)))
        all_kvs = self.interface_kvs if interface else self.kvs
        cols, vals = [], []
        for f, p in zip(funcs, patches):
            c = _coefficients(f, bspline.numdofs(all_kvs[p]))
            cols.append(self.layout.column(p, np.arange(len(c)), interface=interface))
            vals.append(c)
        # all checks passed; insert the whole row at once
        cols = np.concatenate(cols)
        self._builder.insert(np.full(len(cols), row), cols, np.concatenate(vals))

    def insert_interface_edge(self, funcs, iID, bfID):
        """Insert the interface function `bfID` of interface `iID`.

        Args:
            funcs: pair of functions (:class:`.BSplineFunc` or coefficient
                arrays) on the first and second patch of the interface, over
                their interface bases
            iID (int): index into :meth:`.PatchMesh.interface_list`
            bfID (int): index of the function in the interface space; the
                first :meth:`size_plus_interface` functions are the "plus"
                functions, the others the "minus" functions
        """
        self._check_building()
        _check_entity(iID, len(self._interfaces), 'interface')
        info = self.classification.interfaces[iID]
        row = self.layout.interface_row(iID, bfID, info.size_plus, info.kinks,
                endpoints=self.classification.endpoints[iID],
                redirect=self.policy.redirects_interface_ends)
        intf = self._interfaces[iID]
        self._insert_row(row, funcs, (intf.first.patch, intf.second.patch),
                interface=not self.layout.isogeometric)

    def insert_boundary_edge(self, funcs, bID, bfID):
        """Insert the function `bfID` of boundary edge `bID`.

        `funcs` is the function on the single patch of the boundary edge
        (possibly wrapped in a sequence of length one).
        """
        self._check_building()
        _check_entity(bID, len(self.classification.boundary_edges), 'boundary edge')
        info = self.classification.boundary_edges[bID]
        row = self.layout.boundary_edge_row(bID, bfID, self.policy.boundary_edge_split(info.size_plus))
        side = self.mesh.boundary_list()[bID]
        self._insert_row(row, funcs, (side.patch,))

    def insert_vertex(self, funcs, vID, bfID, num_free=None):
        """Insert the function `bfID` of vertex `vID`.

        Args:
            funcs: one function per patch adjoining the vertex, in the order
                of :meth:`.PatchMesh.vertex_list`
            vID (int): index into :meth:`.PatchMesh.vertex_list`
            bfID (int): index of the vertex function
            num_free (int): number of free functions of this vertex; by
                default the one determined by the policy
        """
        self._check_building()
        _check_entity(vID, len(self.classification.vertices), 'vertex')
        info = self.classification.vertices[vID]
        if num_free is None:
            num_free = info.num_free
        row = self.layout.vertex_row(vID, bfID, info.kind, num_free)
        self._insert_row(row, funcs, [pc.patch for pc in info.corners])

    def _interior_identity(self):
        # local functions at least two layers away from all constrained sides
        rows, cols = [], []
        for p, kvs in enumerate(self.kvs):
            n_v, n_u = kvs[0].numdofs, kvs[1].numdofs
            m = [2 if self.mesh.is_constrained(p, b) else 0 for b in range(4)]
            J, I = np.meshgrid(np.arange(m[0], n_v - m[1]), np.arange(m[2], n_u - m[3]), indexing='ij')
            local = (J * n_u + I).ravel()
            rows.append(self.layout.interior_row(p, local))
            cols.append(self.layout.column(p, local))
        if not rows:
            return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
        return np.concatenate(rows), np.concatenate(cols)

    def finalize(self, g1=None):
        """Close the building phase.

        Adds the trivial global functions of the interior local basis
        functions, assembles `D` and splits it into the free part `D0` and
        the boundary part `Dboundary`.

        Args:
            g1 (ndarray): values of the boundary functions, of length
                :meth:`boundary_size`; zero by default

        Returns:
            the :class:`.FinalizedTransform`
        """
        self._check_building()
        rows, cols = self._interior_identity()
        self._T = finalize_transform(self._builder, self.layout, rows, cols, g1)
        if self.verbose:
            self.print_summary()
        return self._T

    ## finalized phase

    @property
    def finalized(self):
        return self._T is not None

    @property
    def transform(self):
        """The :class:`.FinalizedTransform`; only available after :meth:`finalize`."""
        if self._T is None:
            raise NotFinalizedError('G1 system has not been finalized')
        return self._T

    @property
    def D(self):
        return self.transform.D

    @property
    def D0(self):
        return self.transform.D0

    @property
    def Dboundary(self):
        return self.transform.Dboundary

    @property
    def g1(self):
        return self.transform.g1

    def reduced_system(self, K, f):
        """Compute the reduced system ``A = D0 K D0^T`` and right-hand side
        ``F = D0 f - D0 K Dboundary^T g1`` for a system `K`, `f` in the local
        degrees of freedom.

        Returns:
            a pair `(A, F)` of a sparse matrix and a vector, both with one
            entry per row of `D`
        """
        T = self.transform
        n = self.layout.dim_K
        if not scipy.sparse.issparse(K):
            K = scipy.sparse.csr_matrix(np.asarray(K, dtype=float))
        f = np.asarray(f, dtype=float).ravel()
        if K.shape != (n, n):
            raise ValueError('K has shape %s, expected %s' % (K.shape, (n, n)))
        if f.shape != (n,):
            raise ValueError('f has length %d, expected %d' % (f.size, n))
        A = (T.D0 @ K @ T.D0.T).tocsr()
        F = T.D0 @ f - T.D0 @ (K @ (T.Dboundary.T @ T.g1))
        return A, F

    def solve(self, K, f, solver='direct', **kwargs):
        """Solve the reduced system for the global degrees of freedom.

        Only the free rows of `D` which are nonzero enter the solve; all other
        entries of the result (including the boundary rows) are zero.

        Args:
            K: sparse matrix in the local degrees of freedom
            f (ndarray): right-hand side in the local degrees of freedom
            solver: see :func:`.solve_reduced`
            kwargs: further arguments for :func:`.solve_reduced`

        Returns:
            ndarray: the solution `x`, one entry per row of `D`
        """
        A, F = self.reduced_system(K, f)
        active = self.transform.active_rows
        x = np.zeros(self.layout.total)
        x[active] = solvers.solve_reduced(A[active][:, active], F[active], solver=solver, **kwargs)
        return x

    def construct_solution(self, x, progress=False):
        """Per-patch lists of spline contributions of the solution `x`; see
        :func:`.reconstruct.construct_solution`."""
        return reconstruct.construct_solution(self.transform, x, self.kvs,
                interface_kvs=self.interface_kvs, progress=progress)

    def construct_sparse_solution(self, x):
        """Condensed sparse representation of the solution `x`; see
        :func:`.reconstruct.construct_sparse_solution`."""
        return reconstruct.construct_sparse_solution(self.transform, x)

    ## single basis functions

    def _row_function(self, row, patch, interface=False):
        D = self.D
        _check_entity(row, D.shape[0], 'row')
        _check_entity(patch, self.mesh.numpatches, 'patch')
        category = Category.INTERFACE_INTERIOR if interface else Category.INTERIOR
        lo, hi = self.layout[category].range(patch)
        kvs = (self.interface_kvs if interface and not self.layout.isogeometric else self.kvs)[patch]
        return BSplineFunc(kvs, D[row, lo:hi].toarray().ravel())

    def get_single_basis(self, row, patch):
        """The restriction of the global function `row` to the interior basis of `patch`."""
        return self._row_function(row, patch)

    def get_single_interface_basis(self, row, patch):
        """The restriction of the global function `row` to the interface basis of `patch`."""
        return self._row_function(row, patch, interface=True)

    def get_single_boundary_basis(self, boundary_row, patch):
        """The restriction of the `boundary_row`-th boundary function to the
        interior basis of `patch`."""
        _check_entity(boundary_row, self.layout.dim_G1_Bdy, 'boundary function')
        return self._row_function(self.layout.dim_G1_Dofs + boundary_row, patch)
