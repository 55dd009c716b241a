"""Speech-to-text backends for the transcribe command."""

import whisper
import logging
import torch
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import os

from .exceptions import TranscriptionError

logger = logging.getLogger(__name__)

DEVICES = ("cuda", "cpu")

class Transcriber(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def transcribe(self, audio_path: str, language: Optional[str] = None) -> Dict[str, Any]:
        """
        Transcribes the given audio file.

        Args:
            audio_path: Path to the audio file.
            language: Language code, or None to auto-detect.

        Returns:
            A dict shaped like openai-whisper's result: 'text', 'language' and
            'segments', each segment carrying its 'words'.

        Raises:
            TranscriptionError: If transcription fails.
            FileNotFoundError: If the audio file doesn't exist.
        """
        pass

def _resolve_device(device: str) -> str:
    if device not in DEVICES:
        raise ValueError(f"Invalid device specified: {device}. Choose 'cuda' or 'cpu'.")
    if device == "cuda" and not torch.cuda.is_available():
        logger.warning("CUDA device requested but not available. Falling back to CPU.")
        return "cpu"
    return device

class WhisperTranscriber(Transcriber):
    """Runs a local openai-whisper model with word-level timestamps."""

    def __init__(self, model_name: str = "base", device: str = "cuda", fp16: bool = True):
        """
        Loads the Whisper model.

        Args:
            model_name: Whisper model name, e.g. "base" or "medium.en".
            device: "cuda" or "cpu". CUDA falls back to CPU when unavailable.
            fp16: Use half precision. Only honoured on CUDA.

        Raises:
            ValueError: If the device is neither "cuda" nor "cpu".
            TranscriptionError: If the model fails to load.
        """
        self.model_name = model_name
        self.device = _resolve_device(device)
        self.fp16 = fp16 and self.device == "cuda"

        logger.info(f"Loading Whisper model '{self.model_name}' on '{self.device}' (FP16: {self.fp16})")
        try:
            self.model = whisper.load_model(self.model_name, device=self.device)
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise TranscriptionError(f"Failed to load Whisper model '{self.model_name}': {e}") from e

    def transcribe(self, audio_path: str, language: Optional[str] = None) -> Dict[str, Any]:
        """
        Transcribes an audio file, 16 kHz mono WAV preferred.

        The raw result is returned unchanged so that it can be written as
        Whisper JSON and converted by whisper2eaf.
        """
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        options = {
            "language": language,
            "word_timestamps": True,
            "fp16": self.fp16,
            "verbose": None, # no per-segment printing
        }
        logger.info(f"Transcribing {audio_path} (language: {language or 'auto'})")
        try:
            result = self.model.transcribe(audio_path, **options)
        except Exception as e:
            logger.error(f"Error during Whisper transcription process for {audio_path}: {e}", exc_info=True)
            raise TranscriptionError(f"Whisper transcription failed for {audio_path}: {e}") from e

        segments = result.get('segments') or []
        if not segments:
            logger.warning("Transcription result did not contain any segments.")
        logger.info(f"Detected language: {result.get('language', 'N/A')}, {len(segments)} segment(s)")
        return result
