"""Error handling with friendly messages."""

from __future__ import annotations


class MinImageError(Exception):
    """Base exception for all MinImage errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(MinImageError):
    """Configuration error."""

    pass


class ChainValidationError(MinImageError):
    """Command chain rejected before any image work started."""

    def __init__(self, message: str, stage_text: str | None = None) -> None:
        self.stage_text = stage_text
        super().__init__(message, 'Type "Help" to list available commands')


class StageError(MinImageError):
    """A stage failed while running against one image."""

    pass


class ImageNotInitializedError(StageError):
    """A stage needs pixels but no generating stage produced them yet."""

    def __init__(self, image_id: int) -> None:
        super().__init__(f"Image with ID {image_id} is not initialized")


class GatewayError(StageError):
    """Compute routine rejected its arguments or failed."""

    pass


class NativeLibraryError(GatewayError):
    """Shared library could not be loaded or lacks an entry point."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(
            f"Cannot use native compute library '{path}': {detail}",
            "Check gateway.library_path or switch to the reference backend",
        )


class FileError(StageError):
    """File operation error."""

    pass


class ImageLoadError(FileError):
    """Input image is missing or unreadable."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(
            f"Failed to load a valid image from '{path}': {detail}",
            "Check that the file exists and is a supported image format",
        )
