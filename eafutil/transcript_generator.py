"""Orchestrates the media to Whisper JSON to EAF pipeline."""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from .eaf_io import write_eaf
from .exceptions import EafUtilError, FileSystemError, TranscriptionError
from .media_extractor import MediaExtractor
from .utils import ensure_dir_exists, ensure_writable
from .whisper import WhisperTranscript, transcript_to_eaf

if TYPE_CHECKING:
    from .transcriber import Transcriber

logger = logging.getLogger(__name__)

@dataclass
class TranscriptOutput:
    json_path: str
    eaf_path: str
    segments: int

class TranscriptGenerator:
    """
    Manages the end-to-end process of transcribing a media file into an
    EAF file linked to that media.
    """

    def __init__(self, config: dict, media_extractor: MediaExtractor, transcriber: "Transcriber"):
        """
        Initializes the TranscriptGenerator.

        Args:
            config: A dictionary containing configuration settings.
            media_extractor: An instance of MediaExtractor.
            transcriber: An instance of Transcriber.
        """
        self.config = config
        self.media_extractor = media_extractor
        self.transcriber = transcriber

        self.temp_dir = config.get('temp_dir')
        if not self.temp_dir:
            raise EafUtilError("Configuration missing 'temp_dir'.")
        try:
            ensure_dir_exists(self.temp_dir)
            test_file = os.path.join(self.temp_dir, f".eafutil_write_test_{int(time.time())}")
            with open(test_file, "w") as f:
                f.write("test")
            os.remove(test_file)
        except (FileSystemError, OSError, ValueError) as e:
            raise EafUtilError(f"Temporary directory '{self.temp_dir}' is invalid or not writable: {e}") from e

    def _get_output_paths(self, media_path: str, output_dir: str) -> Tuple[str, str, str]:
        """Determines output filenames based on the media path."""
        base_name = os.path.splitext(os.path.basename(media_path))[0]
        json_path = os.path.join(output_dir, f"{base_name}.json")
        eaf_path = os.path.join(output_dir, f"{base_name}.eaf")
        temp_audio_filename = f"{base_name}_{int(time.time())}.wav"
        return json_path, eaf_path, temp_audio_filename

    def _cleanup_temp_files(self, *file_paths: Optional[str]) -> None:
        """Removes temporary files specified."""
        for file_path in file_paths:
            if file_path and os.path.exists(file_path):
                try:
                    os.remove(file_path)
                    logger.info(f"Cleaned up temporary file: {file_path}")
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {file_path}: {e}")

    def generate(self, media_path: str, output_dir: Optional[str] = None,
                 language: Optional[str] = None, overwrite: bool = False) -> TranscriptOutput:
        """
        Transcribes a media file and writes '<stem>.json' and '<stem>.eaf'.

        Args:
            media_path: Path to the audio or video file.
            output_dir: Output directory, defaults to the media file's directory.
            language: Language code passed to Whisper, None to auto-detect.
            overwrite: Replace existing output files.

        Returns:
            The written paths and the number of segments.

        Raises:
            FileNotFoundError: If the media file is not found.
            EafUtilError: For any extraction, transcription or writing error.
        """
        start_time = time.time()
        logger.info(f"--- Starting transcription for: {media_path} ---")
        if not os.path.isfile(media_path):
            raise FileNotFoundError(f"Media file not found: {media_path}")
        output_dir = output_dir or os.path.dirname(os.path.abspath(media_path))
        ensure_dir_exists(output_dir)

        json_path, eaf_path, temp_audio_filename = self._get_output_paths(media_path, output_dir)
        ensure_writable(json_path, overwrite)
        ensure_writable(eaf_path, overwrite)
        extracted_audio_path = None

        try:
            logger.info("Step 1: Extracting audio...")
            extracted_audio_path = self.media_extractor.extract_audio(media_path, self.temp_dir, temp_audio_filename)

            logger.info("Step 2: Transcribing audio...")
            result = self.transcriber.transcribe(extracted_audio_path, language=language)
            if not result.get('segments'):
                raise TranscriptionError("Transcription produced no segments.")

            logger.info("Step 3: Writing Whisper JSON...")
            with open(json_path, "w", encoding="utf-8") as f:
                json.dump(result, f, indent=2, ensure_ascii=False)

            logger.info("Step 4: Converting to EAF...")
            transcript = WhisperTranscript.from_dict(result, json_path)
            doc = transcript_to_eaf(
                transcript,
                media=[media_path],
                no_speech_threshold=self.config.get('no_speech_threshold', 1.0),
                relative_to=output_dir,
                author=self.config.get('author', 'eafutil'),
            )
            write_eaf(doc, eaf_path, overwrite=overwrite)
            logger.info(f"--- Transcription completed in {time.time() - start_time:.2f} seconds ---")
            return TranscriptOutput(json_path, eaf_path, len(transcript.segments))
        except OSError as e:
            raise FileSystemError(f"Could not write transcription output: {e}") from e
        finally:
            logger.info("Cleaning up temporary files...")
            self._cleanup_temp_files(extracted_audio_path)
