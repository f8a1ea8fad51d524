from collections.abc import Sequence
from typing import TypeAlias

import numpy as np
from beartype import BeartypeConf, beartype
from numpy.typing import NDArray

Sample: TypeAlias = float
Threshold: TypeAlias = float
SampleSequence: TypeAlias = Sequence[float] | NDArray[np.float64]

# Integers are accepted wherever a float sample or threshold is expected.
beartype_numeric = beartype(conf=BeartypeConf(is_pep484_tower=True))
