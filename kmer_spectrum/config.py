"""
Global configuration and constants for the canonical k-mer histogram pipeline.
"""

from dataclasses import dataclass

from .exceptions import ConfigurationError

# k-mer length; 2 bits per base must fit a 64-bit word
K = 31
MAX_K = 32

# Shard count; codes are routed by their low bits so this must be a power of two
SHARDS = 16

# Worker pools and bounded queues between stages
SPLITTER_WORKERS = 4
ENCODER_WORKERS = 8
QUEUE_CAPACITY = 3

# Input limits; input is decoded one byte per character, so lengths are in bytes
MAX_LINE_LENGTH = 4_000_000
HEADER_MARKER = ">"
INPUT_ENCODING = "latin-1"

# Histogram buckets run 1..HISTOGRAM_MAX; the last bucket means "or more"
HISTOGRAM_MAX = 255

# broadcast: every batch goes to every shard, shards filter
# direct: the encoder splits each batch by shard before sending
ROUTING_MODES = ("broadcast", "direct")


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass
class PipelineConfig:
    """Runtime knobs for one pipeline run, adjustable on CLI."""
    k: int = K
    shards: int = SHARDS
    splitter_workers: int = SPLITTER_WORKERS
    encoder_workers: int = ENCODER_WORKERS
    queue_capacity: int = QUEUE_CAPACITY
    max_line_length: int = MAX_LINE_LENGTH
    header_marker: str = HEADER_MARKER
    routing: str = "broadcast"
    progress: bool = False

    def validate(self) -> "PipelineConfig":
        """
        Check every option before any worker is started.

        Raises ConfigurationError on the first violation found.
        """
        if not isinstance(self.k, int) or not 1 <= self.k <= MAX_K:
            raise ConfigurationError(
                f"k-mer length must be between 1 and {MAX_K}", {"k": self.k})
        if not isinstance(self.shards, int) or not is_power_of_two(self.shards):
            raise ConfigurationError(
                "shard count must be a power of two", {"shards": self.shards})
        for name in ("splitter_workers", "encoder_workers", "queue_capacity", "max_line_length"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer", {name: value})
        if not isinstance(self.header_marker, str) or len(self.header_marker) != 1:
            raise ConfigurationError(
                "header marker must be a single character",
                {"header_marker": self.header_marker})
        if self.routing not in ROUTING_MODES:
            raise ConfigurationError(
                f"routing must be one of {', '.join(ROUTING_MODES)}", {"routing": self.routing})
        return self
