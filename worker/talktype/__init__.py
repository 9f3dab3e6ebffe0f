"""Push-to-talk dictation worker: capture, resampling and local transcription."""

__version__ = "0.1.0"
