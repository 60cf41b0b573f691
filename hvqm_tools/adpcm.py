from enum import Enum

from .common.errors import OutOfBounds


class AdpcmMode(Enum):
    RESET = 0       # record carries its own predictor / step index
    CONTINUE = 1    # record resumes from the previous record's state

    @classmethod
    def from_code(cls, code):
        return cls(code)


# Step index adjustment per 4-bit code (sign bit ignored)
INDEX_TABLE = [
    -1, -1, -1, -1, 2, 4, 6, 8,
    -1, -1, -1, -1, 2, 4, 6, 8
]

# Quantizer step size per step index
STEP_TABLE = [
    7, 8, 9, 10, 11, 12, 13, 14, 16, 17,
    19, 21, 23, 25, 28, 31, 34, 37, 41, 45,
    50, 55, 60, 66, 73, 80, 88, 97, 107, 118,
    130, 143, 157, 173, 190, 209, 230, 253, 279, 307,
    337, 371, 408, 449, 494, 544, 598, 658, 724, 796,
    876, 963, 1060, 1166, 1282, 1411, 1552, 1707, 1878, 2066,
    2272, 2499, 2749, 3024, 3327, 3660, 4026, 4428, 4871, 5358,
    5894, 6484, 7132, 7845, 8630, 9493, 10442, 11487, 12635, 13899,
    15290, 16818, 18500, 20350, 22385, 24623, 27086, 29794, 32767
]

MAX_STEP_INDEX = len(STEP_TABLE) - 1


class AdpcmState:
    """Predictor and step index carried from one audio record to the next."""

    def __init__(self, previous=0, step_index=0):
        self.previous = previous
        self.step_index = max(0, min(MAX_STEP_INDEX, step_index))

    def __repr__(self):
        return f"AdpcmState(previous={self.previous}, step_index={self.step_index})"

    def __eq__(self, other):
        if not isinstance(other, AdpcmState):
            return NotImplemented
        return (self.previous, self.step_index) == (other.previous, other.step_index)


def reset_sample(hi, lo):
    """
    Initial sample of a Reset record.

    The first byte is the sample's high byte; only the top bit of the second
    byte belongs to the sample, its low 7 bits are the step index.
    """
    value = (hi << 8) | (lo & 0x80)
    if value & 0x8000:
        value -= 0x10000
    return value


def required_bytes(mode, samples):
    """Number of input bytes a record of `samples` samples consumes."""
    if mode == AdpcmMode.RESET:
        if samples == 0:
            return 2
        return 2 + samples // 2
    return (samples + 1) // 2


def decode_adpcm(state, data, mode, samples, duplicate_channel=False):
    """
    Decodes `samples` 16-bit samples from a nibble-packed ADPCM stream.

    Nibbles are read high first. With duplicate_channel every sample is
    written twice, fanning a mono stream out to an interleaved stereo slot.
    `state` is updated in place so the next Continue record picks up where
    this one stopped.
    """
    need = required_bytes(mode, samples)
    if need > len(data):
        raise OutOfBounds(0, need, len(data))

    out = []
    pos = 0
    predictor = state.previous
    step_index = state.step_index

    if mode == AdpcmMode.RESET:
        hi, lo = data[0], data[1]
        pos = 2
        predictor = reset_sample(hi, lo)
        step_index = min(MAX_STEP_INDEX, lo & 0x7F)
        if samples > 0:
            out.append(predictor)
            if duplicate_channel:
                out.append(predictor)
            samples -= 1

    hi_nibble = True
    for _ in range(samples):
        if hi_nibble:
            nibble = data[pos] >> 4
        else:
            nibble = data[pos] & 0x0F
            pos += 1
        hi_nibble = not hi_nibble

        step = STEP_TABLE[step_index]
        diff = step >> 3
        if nibble & 1: diff += step >> 2
        if nibble & 2: diff += step >> 1
        if nibble & 4: diff += step
        if nibble & 8: diff = -diff

        predictor += diff
        if predictor > 32767: predictor = 32767
        elif predictor < -32768: predictor = -32768

        step_index += INDEX_TABLE[nibble]
        if step_index < 0: step_index = 0
        elif step_index > MAX_STEP_INDEX: step_index = MAX_STEP_INDEX

        out.append(predictor)
        if duplicate_channel:
            out.append(predictor)

    state.previous = predictor
    state.step_index = step_index
    return out


class AdpcmDecoder:
    """
    HVQM2 ADPCM stream decoder.

    Owns one AdpcmState; feed it the audio records of a file in order.
    """

    def __init__(self, state=None, duplicate_channel=False):
        self.state = state if state is not None else AdpcmState()
        self.duplicate_channel = duplicate_channel

    def decode(self, data, mode, samples):
        return decode_adpcm(self.state, data, mode, samples, self.duplicate_channel)
