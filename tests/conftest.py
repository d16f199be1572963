"""Pytest configuration and fixtures for sparsad tests."""

import jax

# Round trips through AD products compare exactly against float64 references.
jax.config.update("jax_enable_x64", True)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "tracing: tracer rules and propagation")
    config.addinivalue_line(
        "markers", "control_flow: branching on primal values during tracing"
    )
    config.addinivalue_line("markers", "ops: dispatching array functions")
    config.addinivalue_line("markers", "pattern: sparsity pattern data structures")
    config.addinivalue_line("markers", "coloring: graph coloring algorithms")
    config.addinivalue_line(
        "markers", "decompression: recovering entries from compressed products"
    )
    config.addinivalue_line("markers", "jacobian: sparse Jacobian computation tests")
    config.addinivalue_line(
        "markers", "hessian: Hessian sparsity detection and computation"
    )
    config.addinivalue_line("markers", "slow: exhaustive checks on many graphs")
