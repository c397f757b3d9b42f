"""MinImage core - command chain pipeline orchestrator.

Validates pipe-delimited command chains and runs them as one concurrent
pipeline per image, with shared progress and cooperative cancellation.
"""

__version__ = "1.0.0"

from minimage.core.cancellation import CancellationToken
from minimage.core.chain import ChainPlan, HelpRequest, validate
from minimage.core.config import ConfigResolver
from minimage.core.errors import (
    ChainValidationError,
    ConfigError,
    FileError,
    GatewayError,
    ImageLoadError,
    ImageNotInitializedError,
    MinImageError,
    NativeLibraryError,
    StageError,
)
from minimage.core.events import EventBus, get_event_bus
from minimage.core.gateway import Circle, ComputeGateway, create_gateway
from minimage.core.image import ImageState
from minimage.core.imageio import ImageSaver, load_image, output_file_name
from minimage.core.logging import (
    VerbosityLevel,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)
from minimage.core.orchestration import Orchestrator, RunOutcome
from minimage.core.pipeline import ImageOutcome, ImagePipeline, ImageStatus
from minimage.core.processor import CommandProcessor
from minimage.core.progress import ProgressAggregator, ProgressRecord, ProgressSurface
from minimage.core.stages import STAGES, StageName, StageSpec

__all__ = [
    # Chain
    "ChainPlan",
    "HelpRequest",
    "validate",
    "StageName",
    "StageSpec",
    "STAGES",
    # Execution
    "CancellationToken",
    "ImageState",
    "ImageOutcome",
    "ImagePipeline",
    "ImageStatus",
    "Orchestrator",
    "RunOutcome",
    "CommandProcessor",
    # Progress
    "ProgressAggregator",
    "ProgressRecord",
    "ProgressSurface",
    # Gateway
    "Circle",
    "ComputeGateway",
    "create_gateway",
    # Image files
    "ImageSaver",
    "load_image",
    "output_file_name",
    # Config
    "ConfigResolver",
    # Errors
    "MinImageError",
    "ConfigError",
    "ChainValidationError",
    "StageError",
    "ImageNotInitializedError",
    "GatewayError",
    "NativeLibraryError",
    "FileError",
    "ImageLoadError",
    # Events
    "EventBus",
    "get_event_bus",
    # Logging
    "VerbosityLevel",
    "get_logger",
    "set_verbosity",
    "get_verbosity",
    "set_colors",
]
