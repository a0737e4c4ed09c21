"""psisloo computational functions in NumPy.

Functions implemented in this folder should only depend on NumPy and SciPy,
with the exception of the :mod:`~psisloo.base.dataarray` wrappers.
"""

from psisloo.base.array import array_stats
from psisloo.base.dataarray import dataarray_stats
