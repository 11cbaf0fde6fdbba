from . import inference

__all__ = [
    'inference',
]
