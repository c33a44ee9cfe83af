"""Linear solvers for the reduced G1 system."""
import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg

HAVE_CHOLMOD = True
try:
    from sksparse.cholmod import cholesky, CholmodError
except ImportError:
    HAVE_CHOLMOD = False


class SolverFailure(Exception):
    """Raised when a linear solver fails to factorize or to converge.

    Attributes:
        method (str): the solver which failed
        reason (str): description of the failure
        num_iter (int): number of iterations performed, if applicable
    """
    def __init__(self, method, reason, num_iter=None):
        Exception.__init__(self, '%s failed: %s' % (method, reason))
        self.method = method
        self.reason = reason
        self.num_iter = num_iter


def _as_function(A):
    if A is None:
        return lambda x: x
    if callable(A):
        return A
    return lambda x: A @ x

def make_solver(B, symmetric=False, spd=False):
    """Return a :class:`LinearOperator` which applies the inverse of the
    dense or sparse square matrix `B`.

    For sparse symmetric (``symmetric=True``) or symmetric positive definite
    (``spd=True``) matrices, a CHOLMOD factorization is used if
    scikit-sparse is installed; otherwise SuperLU.

    Raises :class:`SolverFailure` if the factorization fails.
    """
    symmetric = symmetric or spd
    if scipy.sparse.issparse(B):
        B = B.tocsc()
        if symmetric and HAVE_CHOLMOD:
            try:
                solve = cholesky(B).solve_A
            except CholmodError as e:
                raise SolverFailure('cholmod', str(e))
        else:
            try:
                solve = scipy.sparse.linalg.splu(B).solve
            except RuntimeError as e:
                raise SolverFailure('splu', str(e))
    else:
        try:
            if symmetric:
                fac = scipy.linalg.cho_factor(B, check_finite=False)
                solve = lambda x: scipy.linalg.cho_solve(fac, x, check_finite=False)
            else:
                fac = scipy.linalg.lu_factor(B, check_finite=False)
                solve = lambda x: scipy.linalg.lu_solve(fac, x, check_finite=False)
        except np.linalg.LinAlgError as e:
            raise SolverFailure('dense factorization', str(e))
    return scipy.sparse.linalg.LinearOperator(B.shape, dtype=B.dtype,
            matvec=solve, matmat=solve)


def pcg(A, f, x0=None, P=None, rtol=1e-5, atol=0.0, maxiter=100, output=False):
    """Preconditioned conjugate gradient method for ``A x = f``.

    Args:
        A: symmetric positive definite matrix, sparse matrix or callable
        f (ndarray): right-hand side
        x0 (ndarray): initial guess; zero by default
        P: preconditioner as a matrix or callable; identity by default
        rtol, atol (float): stop once the preconditioned residual norm is below
            `rtol` times its initial value for ``x = 0`` or below `atol`
        maxiter (int): maximum number of iterations
        output (bool): print the iteration count and condition estimate

    Returns:
        a tuple `(x, it, m, M, err)` of the solution, the number of
        iterations, the Lanczos estimates of the extremal eigenvalues of the
        preconditioned matrix and the final preconditioned residual norm

    Raises :class:`SolverFailure` if the stopping criterion is not met within
    `maxiter` iterations.
    """
    maxiter = int(maxiter)
    Afun, Pfun = _as_function(A), _as_function(P)
    f = np.asarray(f, dtype=float).ravel()
    x = np.zeros(len(f)) if x0 is None else np.array(x0, dtype=float).ravel()

    r = f - Afun(x)
    h = Pfun(r)
    rho = h @ r
    err = np.sqrt(rho)
    err0 = np.sqrt(Pfun(f) @ f)
    tol = max(rtol * err0, atol)
    relres = lambda: err / err0 if err0 > 0 else 0.0

    if err <= tol:
        if output:
            print('pcg stopped after 0 iterations with relres %g' % relres())
        return x, 0, 1.0, 1.0, err

    # tridiagonal Lanczos matrix
    delta = np.zeros(maxiter + 1)
    gamma = np.zeros(maxiter)
    d = h
    for it in range(1, maxiter + 1):
        z = Afun(d)
        alpha = rho / (z @ d)
        delta[it-1] += 1 / alpha
        x += alpha * d
        r -= alpha * z
        h = Pfun(r)
        rho, rho_old = h @ r, rho
        err = np.sqrt(rho)
        if err <= tol:
            break
        beta = rho / rho_old
        d = h + beta * d
        gamma[it-1] = -np.sqrt(beta) / alpha
        delta[it] = beta / alpha
    else:
        raise SolverFailure('pcg', 'no convergence after %d iterations (relres %g)'
                % (maxiter, relres()), maxiter)

    eigs = abs(scipy.linalg.eigvalsh_tridiagonal(delta[:it], gamma[:it-1]))
    m, M = eigs.min(), eigs.max()
    if output:
        print('pcg stopped after %d iterations with relres %g, condition number ~ %g'
                % (it, relres(), M / m))
    return x, it, m, M, err


def solve_reduced(A, F, solver='direct', rtol=1e-10, maxiter=None, output=False):
    """Solve the symmetric positive definite reduced system ``A x = F``.

    Args:
        A: sparse matrix of the reduced system
        F (ndarray): right-hand side
        solver: ``'direct'`` for a sparse Cholesky (CHOLMOD, if available) or
            LU factorization, ``'cg'`` for the conjugate gradient method with
            diagonal preconditioner, or a callable ``solver(A, F)`` returning
            the solution
        rtol (float): relative tolerance for ``'cg'``
        maxiter (int): maximum number of iterations for ``'cg'``; defaults to
            ten times the size of the system
        output (bool): print information about the iteration

    Returns:
        ndarray: the solution vector

    Raises :class:`SolverFailure` if the solver fails or returns a solution
    which is not finite.
    """
    F = np.asarray(F, dtype=float).ravel()
    n = F.shape[0]
    if A.shape != (n, n):
        raise ValueError('system matrix has shape %s, expected %s' % (A.shape, (n, n)))
    if n == 0:
        return np.zeros(0)

    if callable(solver):
        method = getattr(solver, '__name__', 'custom solver')
        try:
            x = solver(A, F)
        except (RuntimeError, ValueError, np.linalg.LinAlgError) as e:
            raise SolverFailure(method, str(e)) from e
    elif solver == 'direct':
        method = 'direct'
        x = make_solver(scipy.sparse.csr_matrix(A), spd=True).dot(F)
    elif solver == 'cg':
        method = 'cg'
        diag = A.diagonal()
        if np.any(diag <= 0):
            raise SolverFailure('cg', 'matrix has non-positive diagonal entries')
        P = scipy.sparse.diags(1.0 / diag)
        if maxiter is None:
            maxiter = 10 * n
        x = pcg(A, F, P=P, rtol=rtol, maxiter=maxiter, output=output)[0]
    else:
        raise ValueError('unknown solver %r' % (solver,))

    x = np.asarray(x, dtype=float).ravel()
    if x.shape != (n,) or not np.all(np.isfinite(x)):
        raise SolverFailure(method, 'returned an invalid solution')
    return x
