"""
Cache Compression Utilities

Research results are large JSON documents (hundreds of keywords with
metrics), so entries above a threshold are compressed before they go to
Redis. LZ4 is used by default; entries above 100KB use ZSTD for the better
ratio.

Wire format: 1-byte marker followed by the payload.
    0x00  uncompressed
    0x01  LZ4 frame
    0x02  ZSTD frame
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Tuple

import lz4.frame
import zstandard


logger = logging.getLogger(__name__)


# Compression type markers (1-byte prefix)
MARKER_UNCOMPRESSED = b'\x00'
MARKER_LZ4 = b'\x01'
MARKER_ZSTD = b'\x02'


@dataclass
class CompressionStats:
    """Size change for one compressed entry."""
    original_size: int
    compressed_size: int
    algorithm: str

    @property
    def bytes_saved(self) -> int:
        return self.original_size - self.compressed_size

    @property
    def savings_percent(self) -> float:
        if self.original_size == 0:
            return 0.0
        return (1 - self.compressed_size / self.original_size) * 100


class CacheCompressor:
    """Marker-prefixed LZ4/ZSTD compression for cache entries."""

    def __init__(
        self,
        enabled: bool = True,
        threshold: int = 1024,  # 1KB minimum for compression
        zstd_threshold: int = 102400,  # 100KB for ZSTD
        zstd_level: int = 3,
    ):
        self.enabled = enabled
        self.threshold = threshold
        self.zstd_threshold = zstd_threshold
        self._zstd_compressor = zstandard.ZstdCompressor(level=zstd_level)
        self._zstd_decompressor = zstandard.ZstdDecompressor()

    def compress(self, data: bytes) -> Tuple[bytes, Optional[CompressionStats]]:
        """
        Compress data when it is large enough and compression helps.

        Returns:
            Tuple of (marked_data, stats), stats is None when stored uncompressed
        """
        if not self.enabled or len(data) < self.threshold:
            return MARKER_UNCOMPRESSED + data, None

        try:
            if len(data) >= self.zstd_threshold:
                compressed = self._zstd_compressor.compress(data)
                marker, algorithm = MARKER_ZSTD, "zstd"
            else:
                compressed = lz4.frame.compress(data)
                marker, algorithm = MARKER_LZ4, "lz4"
        except Exception as e:
            logger.warning(f"Compression failed: {e}, storing uncompressed")
            return MARKER_UNCOMPRESSED + data, None

        if len(compressed) >= len(data):
            return MARKER_UNCOMPRESSED + data, None

        stats = CompressionStats(
            original_size=len(data),
            compressed_size=len(compressed) + 1,  # +1 for marker
            algorithm=algorithm,
        )
        return marker + compressed, stats

    def decompress(self, data: bytes) -> bytes:
        """
        Strip the marker and decompress.

        Raises:
            ValueError: Unknown marker
        """
        if not data:
            return data

        marker, payload = data[0:1], data[1:]
        if marker == MARKER_UNCOMPRESSED:
            return payload
        if marker == MARKER_LZ4:
            return lz4.frame.decompress(payload)
        if marker == MARKER_ZSTD:
            return self._zstd_decompressor.decompress(payload)
        raise ValueError(f"Unknown compression marker: {marker!r}")


def _default_handler(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def serialize_value(value: Any) -> bytes:
    """
    Serialize a Python value to bytes for caching.

    Objects with to_dict() (research models) are serialized through it.
    """
    return json.dumps(value, default=_default_handler, ensure_ascii=False).encode("utf-8")


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes back to a Python value."""
    if not data:
        return None
    return json.loads(data.decode("utf-8"))
