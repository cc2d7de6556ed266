"""
Exception hierarchy for kmer_spectrum.

Anything derived from KmerSpectrumError aborts the whole run; there is no
partial histogram.
"""

from typing import Optional


class KmerSpectrumError(Exception):
    """Base exception for all kmer_spectrum errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(KmerSpectrumError):
    """Invalid option; detected before the pipeline starts."""


class InputTooLargeError(KmerSpectrumError):
    """A sequence line is longer than the accepted maximum."""

    def __init__(self, line_number: int, length: int, limit: int):
        super().__init__(
            "input line exceeds maximum accepted length",
            {"line": line_number, "length": f"{length:,}", "limit": f"{limit:,}"},
        )
        self.line_number = line_number
        self.length = length
        self.limit = limit


class PipelineAbortedError(KmerSpectrumError):
    """Raised in a worker that was stopped because another worker failed."""
