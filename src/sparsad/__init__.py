"""sparsad - Sparse Jacobians and Hessians via tracing, coloring and decompression.

Sparsity is detected by running a function once on tracers at a
representative point. The pattern is colored so that many entries share
one AD product, and the entries are recovered from the compressed products.
"""

from sparsad import ops
from sparsad._exceptions import (
    InvalidStructure,
    PreconditionViolated,
    SparsadError,
    UnsupportedOperation,
)
from sparsad.coloring import (
    color_acyclic,
    color_cols,
    color_distance_k,
    color_hessian_pattern,
    color_jacobian_pattern,
    color_rows,
    color_star,
    hessian_coloring,
    is_acyclic_coloring,
    is_distance_k_coloring,
    is_star_coloring,
    is_structurally_orthogonal,
    jacobian_coloring,
)
from sparsad.decompression import compress, decompress, hessian, jacobian
from sparsad.detection import hessian_sparsity, jacobian_sparsity
from sparsad.pattern import ColoredPattern, SparsityPattern
from sparsad.verify import (
    VerificationError,
    check_hessian_correctness,
    check_jacobian_correctness,
)

__all__ = [
    "ColoredPattern",
    "InvalidStructure",
    "PreconditionViolated",
    "SparsadError",
    "SparsityPattern",
    "UnsupportedOperation",
    "VerificationError",
    "check_hessian_correctness",
    "check_jacobian_correctness",
    "color_acyclic",
    "color_cols",
    "color_distance_k",
    "color_hessian_pattern",
    "color_jacobian_pattern",
    "color_rows",
    "color_star",
    "compress",
    "decompress",
    "hessian",
    "hessian_coloring",
    "hessian_sparsity",
    "is_acyclic_coloring",
    "is_distance_k_coloring",
    "is_star_coloring",
    "is_structurally_orthogonal",
    "jacobian",
    "jacobian_coloring",
    "jacobian_sparsity",
    "ops",
]
