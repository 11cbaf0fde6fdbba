from . import dtypes
from . import integrators
from . import io_utils
from . import pipeline
from . import scheduling

__all__ = [
    'dtypes',
    'integrators',
    'io_utils',
    'pipeline',
    'scheduling',
]
