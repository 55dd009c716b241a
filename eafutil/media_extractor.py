"""Cuts media clips and extracts audio with ffmpeg."""

import ffmpeg
import os
import shutil
import logging
from typing import Optional

from .exceptions import AudioExtractionError, ClipExtractionError, FFmpegNotFoundError, FileSystemError
from .utils import ensure_dir_exists, ensure_writable

logger = logging.getLogger(__name__)

class MediaExtractor:
    """Runs ffmpeg on linked media files."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        """
        Initializes the MediaExtractor.

        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}")

    def check_available(self) -> str:
        """
        Resolves the ffmpeg executable.

        Returns:
            The full path to ffmpeg.

        Raises:
            FFmpegNotFoundError: If ffmpeg is neither an existing file nor on the PATH.
        """
        resolved = shutil.which(self.ffmpeg_cmd)
        if resolved is None:
            raise FFmpegNotFoundError(
                f"ffmpeg not found: '{self.ffmpeg_cmd}'. Install ffmpeg or pass its location with --ffmpeg."
            )
        return resolved

    def _run(self, stream, output_path: str) -> None:
        """Runs an ffmpeg-python stream, removing partial output on failure."""
        try:
            stream.overwrite_output().run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True)
        except FileNotFoundError as e:
            # subprocess raises this when the executable itself is missing
            raise FFmpegNotFoundError(f"ffmpeg not found: '{self.ffmpeg_cmd}'") from e
        except ffmpeg.Error:
            if os.path.exists(output_path):
                try:
                    os.remove(output_path)
                except OSError:
                    logger.warning(f"Could not clean up partially created file: {output_path}")
            raise

    def extract_timespan(self, media_path: str, start_ms: int, end_ms: int,
                         output_path: str, overwrite: bool = False) -> str:
        """
        Cuts the span [start_ms, end_ms] out of a media file.

        Equivalent to `ffmpeg -ss <start> -i <media> -t <duration> <output> -y`.
        The container and codecs follow the output file extension.

        Args:
            media_path: Source media file.
            start_ms: Clip start in milliseconds.
            end_ms: Clip end in milliseconds.
            output_path: Clip file to write.
            overwrite: Replace an existing clip.

        Returns:
            The path to the written clip.

        Raises:
            FileNotFoundError: If the source media does not exist.
            FileSystemError: If the clip exists and `overwrite` is False.
            FFmpegNotFoundError: If ffmpeg cannot be executed.
            ClipExtractionError: If ffmpeg exits with an error.
        """
        if not os.path.exists(media_path):
            raise FileNotFoundError(f"Media file not found: {media_path}")
        if end_ms <= start_ms:
            raise ClipExtractionError(f"Invalid clip span {start_ms}-{end_ms} ms for {media_path}")
        ensure_writable(output_path, overwrite)
        ensure_dir_exists(os.path.dirname(os.path.abspath(output_path)))

        logger.debug(f"Extracting {start_ms}-{end_ms} ms from {media_path} to {output_path}")
        stream = (
            ffmpeg
            .input(media_path, ss=start_ms / 1000)
            .output(output_path, t=(end_ms - start_ms) / 1000)
        )
        try:
            self._run(stream, output_path)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffmpeg stderr: {stderr_output}")
            raise ClipExtractionError(f"ffmpeg failed to extract {start_ms}-{end_ms} ms from {media_path}: {stderr_output}") from e
        return output_path

    def extract_audio(self, video_filepath: str, output_audio_dir: str, output_filename: Optional[str] = None) -> str:
        """
        Extracts the audio stream from a media file to a 16 kHz mono WAV file.

        Args:
            video_filepath: Path to the input media file.
            output_audio_dir: Directory to save the extracted audio file.
            output_filename: Optional base name for the output audio file.
                             If None, uses the media filename.

        Returns:
            The full path to the extracted audio file (WAV format).

        Raises:
            FileNotFoundError: If the input media file does not exist.
            FFmpegNotFoundError: If ffmpeg cannot be executed.
            AudioExtractionError: If ffmpeg fails to extract the audio.
            FileSystemError: If the output directory cannot be created/accessed.
        """
        logger.info(f"Starting audio extraction for: {video_filepath}")
        if not os.path.exists(video_filepath):
            raise FileNotFoundError(f"Input media file not found: {video_filepath}")

        ensure_dir_exists(output_audio_dir)

        if output_filename is None:
            base_name = os.path.splitext(os.path.basename(video_filepath))[0]
        else:
            base_name = os.path.splitext(output_filename)[0]
        output_audio_path = os.path.join(output_audio_dir, f"{base_name}.wav")

        if os.path.exists(output_audio_path):
            logger.warning(f"Output audio file already exists, overwriting: {output_audio_path}")
            try:
                os.remove(output_audio_path)
            except OSError as e:
                raise FileSystemError(f"Could not remove existing audio file {output_audio_path}: {e}") from e

        # pcm_s16le at 16 kHz mono is what Whisper resamples to anyway
        stream = (
            ffmpeg
            .input(video_filepath)
            .output(output_audio_path, acodec='pcm_s16le', ar=16000, ac=1)
        )
        try:
            logger.info(f"Running ffmpeg to extract audio to {output_audio_path}...")
            self._run(stream, output_audio_path)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffmpeg stderr: {stderr_output}")
            raise AudioExtractionError(f"ffmpeg failed: {stderr_output}") from e
        logger.info(f"Successfully extracted audio to: {output_audio_path}")
        return output_audio_path
