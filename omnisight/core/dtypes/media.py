from typing import Dict, Any
import numpy as np
from numpy.typing import NDArray

ImageArray = NDArray[np.uint8]

Metadata = Dict[str, Any]

Timestamp = float  # Unix timestamp
FrameID = int
Duration = float  # seconds
