"""Custom Exceptions for the eafutil application."""

class EafUtilError(Exception):
    """Base class for exceptions in this package."""
    pass

class ConfigurationError(EafUtilError):
    """Exception raised for errors in configuration loading."""
    pass

class EafParseError(EafUtilError):
    """Exception raised when an EAF file is malformed or has broken references."""
    pass

class TranscriptParseError(EafUtilError):
    """Exception raised when a transcript JSON file is malformed or not recognised."""
    pass

class TierNotFoundError(EafUtilError):
    """Exception raised when a tier ID does not exist in the document."""
    pass

class AnnotationNotFoundError(EafUtilError):
    """Exception raised when an annotation ID does not exist in the document."""
    pass

class MediaError(EafUtilError):
    """Exception raised for missing or unusable linked media files."""
    pass

class FFmpegNotFoundError(EafUtilError):
    """Exception raised when the ffmpeg executable cannot be found."""
    pass

class ClipExtractionError(EafUtilError):
    """Exception raised when ffmpeg fails to cut a media clip."""
    pass

class AudioExtractionError(EafUtilError):
    """Exception raised for errors during audio extraction."""
    pass

class TranscriptionError(EafUtilError):
    """Exception raised for errors during transcription."""
    pass

class InvalidPatternError(EafUtilError):
    """Exception raised for an invalid search or filter pattern."""
    pass

class FileSystemError(EafUtilError):
    """Exception raised for file system related errors (permissions, existing files etc)."""
    pass
