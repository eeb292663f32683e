"""
Fixed signal and calibration constants for thermodo.

These values must match the ones burned into the physical sensor's
calibration, so integer arithmetic is kept where the sensor firmware
expects it.
"""

SAMPLE_RATE = 44100
FREQUENCY = 1000
PERIODS_PER_CELL = 10
NUMBER_OF_CELLS = 10
SYNC_CELL_INDEX = 9

# Integer division: 44100 // 1000 = 44, so a cell is 440 samples long.
SAMPLES_PER_CELL = (SAMPLE_RATE // FREQUENCY) * PERIODS_PER_CELL
SAMPLES_PER_FRAME = (NUMBER_OF_CELLS - 1) * SAMPLES_PER_CELL

REFERENCE_AMPLITUDE = 0.5
# Narrowed amplitude band avoids clipping and improves signal to noise ratio
UPPER_AMPLITUDE = 0.9
LOWER_AMPLITUDE = 0.1

CLIPPING_THRESHOLD = 32000
MAX_CLIPPED_SAMPLES = 10
MAX_AMPLITUDE = 32767
CHANNELS_COUNT = 2

MIN_TEMP = -40.0
MAX_TEMP = 125.0
TEMPERATURE_INTERVAL = 1.0
REF_RESISTANCE = 100.0

# Capture buffer length
BUFFER_SECONDS = 0.5
BUFFER_SAMPLES = int(BUFFER_SECONDS * SAMPLE_RATE)

# Simplified (two-phase) mode
SIGNAL_THRESHOLD = 1000
PROBE_DURATION_MS = int(BUFFER_SECONDS / 2 * 1000)

# Presence detection
TEST_TONE_DURATION_MS = 700
TEST_TONE_FREQUENCY = 200
CUT_SAMPLES_COUNT = 1000
SILENCE_THRESHOLD = 100
TONE_TO_SILENCE_RATIO = 10.0
PLAYBACK_DELAY_SECONDS = 0.2
