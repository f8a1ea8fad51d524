import random
from collections.abc import Sequence

from sample_match.types import beartype_numeric


@beartype_numeric
def zeros(count: int) -> list[float]:
    return [0.0] * count


@beartype_numeric
def add_jitter(samples: Sequence[float], jitter_range: float, rng: random.Random | None = None) -> list[float]:
    """Return a copy of ``samples`` with uniform noise in ``[-jitter_range, jitter_range]`` added."""
    if rng is None:
        rng = random.Random()
    return [sample + rng.uniform(-jitter_range, jitter_range) for sample in samples]
