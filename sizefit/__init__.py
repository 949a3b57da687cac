"""SizeFit package root.

Export primary classes and CLI for convenience when installed via pip.
"""

__version__ = "0.1.0"

from .cli import main as cli_main  # noqa: F401
from .candidates import Candidate, CandidateTracker, SearchOutcome  # noqa: F401
from .ladders import ScaleLadder, FrameRateLadder  # noqa: F401
from .image_search import ImageTargetSizeSearch  # noqa: F401
from .animated_search import AnimatedTargetSizeSearch  # noqa: F401
from .dispatcher import MediaDispatcher, DispatchResult  # noqa: F401
from .search_pool import SearchPool  # noqa: F401
from .workspace import Workspace, BestArtifactSlot  # noqa: F401
from .error_handler import (  # noqa: F401
    SizeFitError, InvalidTargetError, UnsupportedFormatError, ProbeError, EncodeError, CapacityError,
)
