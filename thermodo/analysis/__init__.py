"""Signal decoding: extraction, frames, calibration and thermistor lookup."""
