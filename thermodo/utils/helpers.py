"""
Utility functions for thermodo.
"""

import math
import platform


def get_platform() -> str:
    """Get the current platform (linux or darwin for macOS)."""
    system = platform.system().lower()
    if system == "darwin":
        return "macos"
    return system


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def format_temperature(celsius: float, units: str = "celsius") -> str:
    """
    Format a temperature for display.

    Args:
        celsius: Temperature in degrees Celsius, NaN if undetermined
        units: "celsius" or "fahrenheit"

    Returns:
        Formatted temperature, or "--" when undetermined
    """
    if celsius is None or math.isnan(celsius):
        return "--"
    if units == "fahrenheit":
        return f"{celsius_to_fahrenheit(celsius):.1f}°F"
    if units != "celsius":
        raise ValueError(f"Unknown temperature units: {units}")
    return f"{celsius:.1f}°C"


def format_resistance(ohms: float) -> str:
    """Format a normalized resistance."""
    if ohms is None or math.isnan(ohms):
        return "--"
    return f"{ohms:.2f}Ω"
