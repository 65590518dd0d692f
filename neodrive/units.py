# Filename: neodrive/units.py
"""Byte units and formatting. Imports nothing from the server so the client can use it."""

KB = 1024
MB = 1024 * KB
GB = 1024 * MB


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 B"
    sizes = ["B", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {sizes[i]}"
