from enum import Enum
from typing import Final, Tuple


class Role(str, Enum):
    FACE = "face"
    BODY = "body"
    HAND = "hand"
    OBJECT = "object"


# Declared order; sequential execution and result ordering both follow it.
ROLE_ORDER: Final[Tuple[Role, ...]] = (Role.FACE, Role.BODY, Role.HAND, Role.OBJECT)
