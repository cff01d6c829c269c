from __future__ import annotations

import logging

from typing import TYPE_CHECKING

import numpy as np
import scipy as sp
import scipy.sparse.linalg

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def apply_dirichlet(
    A: sp.sparse.csr_matrix,
    b: npt.NDArray[np.float64],
    dofs: npt.NDArray[np.int64],
    values: float | npt.NDArray[np.float64],
) -> tuple[sp.sparse.csr_matrix, npt.NDArray[np.float64]]:
    """
    Impose fixed values on a symmetric system while keeping it symmetric.

    Rows and columns of the fixed DOFs are removed from the coupling; the known
    values are moved to the right-hand side, and each fixed row keeps only its
    diagonal entry.

    Args:
        A: System matrix.
        b: Right-hand side.
        dofs: Indices of the fixed DOFs.
        values: Fixed value(s), scalar or one per DOF.

    Returns:
        The modified matrix and right-hand side.
    """
    n = A.shape[0]
    dofs = np.asarray(dofs, dtype=np.int64)

    g = np.zeros(n, dtype=np.float64)
    g[dofs] = values

    fixed = np.zeros(n, dtype=bool)
    fixed[dofs] = True
    free = (~fixed).astype(np.float64)

    diagonal = A.diagonal().copy()
    diagonal[diagonal == 0.0] = 1.0
    d_fixed = np.where(fixed, diagonal, 0.0)

    P = sp.sparse.diags(free)
    A_mod = (P @ A @ P + sp.sparse.diags(d_fixed)).tocsr()
    b_mod = free * (b - A @ g) + d_fixed * g

    return A_mod, b_mod


def ssor_preconditioner(A: sp.sparse.csr_matrix, omega: float = 1.2) -> sp.sparse.linalg.LinearOperator:
    """
    Symmetric successive over-relaxation preconditioner.

    With A = L + D + U the preconditioner is
    M = ω/(2-ω) (D/ω + L) D⁻¹ (D/ω + U), applied by two triangular solves.
    """
    if not 0.0 < omega < 2.0:
        raise ValueError(f"SSOR parameter must lie in (0, 2), got {omega}.")

    A = sp.sparse.csr_matrix(A)
    diagonal = A.diagonal()
    if np.any(diagonal == 0.0):
        raise ValueError("SSOR needs a matrix with a non-zero diagonal.")

    D = sp.sparse.diags(diagonal / omega)
    lower = (sp.sparse.tril(A, k=-1) + D).tocsr()
    upper = (sp.sparse.triu(A, k=1) + D).tocsr()
    scale = (2.0 - omega) / omega

    def apply(r: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        y = sp.sparse.linalg.spsolve_triangular(lower, np.ravel(r), lower=True)
        y *= diagonal
        z = sp.sparse.linalg.spsolve_triangular(upper, y, lower=False)
        return scale * z

    return sp.sparse.linalg.LinearOperator(A.shape, matvec=apply, dtype=np.float64)


def solve_cg(
    A: sp.sparse.csr_matrix,
    b: npt.NDArray[np.float64],
    x0: npt.NDArray[np.float64] | None = None,
    max_iter: int = 2000,
    tol: float = 1e-9,
    pc_ssor: bool = True,
    ssor_param: float = 1.2,
) -> tuple[npt.NDArray[np.float64], int]:
    """
    Conjugate gradient solve of a symmetric positive definite system.

    Args:
        A: System matrix.
        b: Right-hand side.
        x0: Initial guess.
        max_iter: Iteration cap.
        tol: Absolute tolerance on the residual norm.
        pc_ssor: Precondition with SSOR.
        ssor_param: Relaxation parameter of SSOR.

    Returns:
        The solution and the number of iterations. Reaching ``max_iter``
        means the solve did not converge; it is logged, not raised.
    """
    M = ssor_preconditioner(A, ssor_param) if pc_ssor else None

    iterations = 0

    def count(_: npt.NDArray[np.float64]) -> None:
        nonlocal iterations
        iterations += 1

    x, info = sp.sparse.linalg.cg(A, b, x0=x0, rtol=0.0, atol=tol, maxiter=max_iter, M=M, callback=count)

    if info > 0:
        logger.warning(
            f"CG did not reach the tolerance {tol:g} in {max_iter} iterations "
            f"(residual {np.linalg.norm(b - A @ x):.3e})."
        )
        iterations = max_iter
    elif info < 0:
        raise RuntimeError(f"CG failed with illegal input or breakdown (info={info}).")

    return x, iterations
