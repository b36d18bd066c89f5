"""
WAV container for raw PCM returned by the TTS model.

Header layout (44 bytes, little endian):

    0   "RIFF"              4   36 + data_length
    8   "WAVE"              12  "fmt "
    16  16 (fmt size)       20  1 (PCM)
    22  channels            24  sample_rate
    28  byte_rate           32  block_align
    34  bits_per_sample     36  "data"
    40  data_length
"""

import struct


WAV_HEADER_SIZE = 44


def build_wav_header(
    data_length: int,
    sample_rate: int = 24000,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    if data_length < 0:
        raise ValueError("data_length must be >= 0")

    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align

    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_length,
    )


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 24000,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Prefix raw PCM with a WAV header."""
    return build_wav_header(len(pcm), sample_rate, channels, bits_per_sample) + pcm
