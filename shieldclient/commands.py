"""Board command strings sent through POST /command."""

from .common import BOARD_GANGLION, log

STREAM_START   = "b"
STREAM_STOP    = "s"
SOFT_RESET     = "v"
QUERY_REGISTERS = "?"
SD_LOG_STOP    = "j"
SAMPLE_RATE_SET = "~"
SAMPLE_RATE_GET_CURRENT = "~"
GANGLION_IMPEDANCE_START = "z"
GANGLION_IMPEDANCE_STOP  = "Z"

CHANNEL_OFF = "12345678qwertyui"
CHANNEL_ON  = "!@#$%^&*QWERTYUI"
CHANNEL_SET_KEYS = "12345678QWERTYUI"

GAIN_CODES = {1: "0", 2: "1", 4: "2", 6: "3", 8: "4", 12: "5", 24: "6"}

INPUT_TYPE_CODES = {
    "normal":     "0",
    "shorted":    "1",
    "biasMethod": "2",
    "mvdd":       "3",
    "temp":       "4",
    "testsig":    "5",
    "biasDrp":    "6",
    "biasDrn":    "7",
}

SD_DURATIONS = {
    "14sec":  "a",
    "5min":   "A",
    "15min":  "S",
    "30min":  "F",
    "1hour":  "G",
    "2hour":  "H",
    "4hour":  "J",
    "12hour": "K",
    "24hour": "L",
}

CYTON_SAMPLE_RATES = {16000: "0", 8000: "1", 4000: "2", 2000: "3", 1000: "4", 500: "5", 250: "6"}
GANGLION_SAMPLE_RATES = {25600: "0", 12800: "1", 6400: "2", 3200: "3", 1600: "4", 800: "5", 400: "6", 200: "7"}


def _channel_index(channel_number: int) -> int:
    if not isinstance(channel_number, int) or not 1 <= channel_number <= 16:
        raise ValueError(f"channel number must be 1-16, got: {channel_number}")
    return channel_number - 1


def channel_off(channel_number: int) -> str:
    return CHANNEL_OFF[_channel_index(channel_number)]


def channel_on(channel_number: int) -> str:
    return CHANNEL_ON[_channel_index(channel_number)]


def channel_set(channel_number: int, power_down: bool = False, gain: int = 24,
                input_type: str = "normal", bias: bool = True, srb2: bool = True,
                srb1: bool = False) -> str:
    """Build the ``x...X`` channel settings command."""
    key = CHANNEL_SET_KEYS[_channel_index(channel_number)]
    if gain not in GAIN_CODES:
        raise ValueError(f"gain must be one of {sorted(GAIN_CODES)}, got: {gain}")
    if input_type not in INPUT_TYPE_CODES:
        raise ValueError(f"input type must be one of {sorted(INPUT_TYPE_CODES)}, got: {input_type}")
    return "".join([
        "x",
        key,
        "1" if power_down else "0",
        GAIN_CODES[gain],
        INPUT_TYPE_CODES[input_type],
        "1" if bias else "0",
        "1" if srb2 else "0",
        "1" if srb1 else "0",
        "X",
    ])


def impedance_set(channel_number: int, p_input: bool = False, n_input: bool = False) -> str:
    key = CHANNEL_SET_KEYS[_channel_index(channel_number)]
    return f"z{key}{'1' if p_input else '0'}{'1' if n_input else '0'}Z"


def sample_rate_set(board_type: str, sample_rate: int) -> str:
    """
    Build the sample-rate command. Rates the board does not support are
    rounded to the nearest supported one; the firmware reply carries the
    rate actually applied.
    """
    table = GANGLION_SAMPLE_RATES if board_type == BOARD_GANGLION else CYTON_SAMPLE_RATES
    if not isinstance(sample_rate, int) or sample_rate <= 0:
        raise ValueError(f"sample rate must be a positive integer, got: {sample_rate}")
    if sample_rate not in table:
        nearest = min(table, key=lambda rate: abs(rate - sample_rate))
        log.warning(f"{board_type} does not support {sample_rate} Hz, requesting {nearest} Hz")
        sample_rate = nearest
    return f"{SAMPLE_RATE_SET}{table[sample_rate]}"


def sample_rate_get() -> str:
    return f"{SAMPLE_RATE_SET}{SAMPLE_RATE_GET_CURRENT}"


def sd_start(duration: str) -> str:
    try:
        return SD_DURATIONS[duration]
    except KeyError:
        raise ValueError(f"SD duration must be one of {', '.join(SD_DURATIONS)}, got: {duration}")
