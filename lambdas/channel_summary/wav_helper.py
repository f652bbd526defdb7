# lambdas/channel_summary/wav_helper.py
"""
Just enough RIFF/WAVE handling to glue PCM clips from the same voice engine
into one file. All clips are assumed to share the first clip's format.
"""
import struct
from dataclasses import dataclass
from typing import List, Optional

from lambdas.shared.run_logger import RunLogger

HEADER_SIZE = 44


@dataclass
class WavData:
    data: bytes
    sample_rate: int
    channels: int
    bits_per_sample: int


def extract_audio_data(buffer: bytes, logger: Optional[RunLogger] = None) -> Optional[WavData]:
    logger = logger or RunLogger()
    if len(buffer) < HEADER_SIZE or buffer[0:4] != b"RIFF":
        logger.error("Not a valid WAV file - missing RIFF header")
        return None

    channels = struct.unpack_from("<H", buffer, 22)[0]
    sample_rate = struct.unpack_from("<I", buffer, 24)[0]
    bits_per_sample = struct.unpack_from("<H", buffer, 34)[0]

    offset = 12
    while offset < len(buffer) - 8:
        chunk_id = buffer[offset:offset + 4]
        chunk_size = struct.unpack_from("<I", buffer, offset + 4)[0]
        if chunk_id == b"data":
            start = offset + 8
            return WavData(buffer[start:start + chunk_size], sample_rate, channels, bits_per_sample)
        offset += 8 + chunk_size
        if chunk_size % 2 == 1:
            offset += 1

    logger.error("Data chunk not found in WAV file")
    return None


def build_header(data_size: int, sample_rate: int, channels: int, bits_per_sample: int) -> bytes:
    block_align = channels * bits_per_sample // 8
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF", HEADER_SIZE - 8 + data_size, b"WAVE",
        b"fmt ", 16, 1, channels, sample_rate, sample_rate * block_align, block_align, bits_per_sample,
        b"data", data_size,
    )


def merge_wav_files(buffers: List[bytes], logger: Optional[RunLogger] = None) -> bytes:
    """Concatenates the PCM data of every readable clip under a single fresh header."""
    logger = logger or RunLogger()
    if not buffers:
        return b""
    if len(buffers) == 1:
        return buffers[0]

    clips: List[WavData] = []
    for i, buffer in enumerate(buffers):
        extracted = extract_audio_data(buffer, logger)
        if not extracted:
            logger.error(f"Failed to extract audio data from buffer {i}")
            continue
        clips.append(extracted)

    if not clips:
        logger.error("No valid audio data found")
        return b""

    first = clips[0]
    data = b"".join(clip.data for clip in clips)
    merged = build_header(len(data), first.sample_rate, first.channels, first.bits_per_sample) + data
    logger.log(f"Merged {len(clips)} WAV files, total size: {len(merged)} bytes")
    return merged
