import jax.numpy as jnp
import pytest

from kalmanjax.config import set_dtype


@pytest.fixture(autouse=True)
def _ensure_float64():
    """Run every test in float64.

    Filter comparisons with tight tolerances assume float64; the float32
    comparisons set their dtype explicitly. Each pytest-xdist worker
    starts in the float32 default, hence the autouse fixture;
    test_config.py overrides it to exercise float32.
    """
    set_dtype(jnp.float64)
