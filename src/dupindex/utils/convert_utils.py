"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

utils/convert_utils.py
Size conversions used by the CLI, scan parameters and resolution reports.
"""
import re

_UNITS = {
    'B': 1,
    'K': 1024, 'KB': 1024, 'KIB': 1024,
    'M': 1024 ** 2, 'MB': 1024 ** 2, 'MIB': 1024 ** 2,
    'G': 1024 ** 3, 'GB': 1024 ** 3, 'GIB': 1024 ** 3,
    'T': 1024 ** 4, 'TB': 1024 ** 4, 'TIB': 1024 ** 4,
    'P': 1024 ** 5, 'PB': 1024 ** 5, 'PIB': 1024 ** 5,
}

_SIZE_PATTERN = re.compile(r'^(?P<value>[+-]?\d+(?:\.\d+)?)\s*(?P<unit>[A-Z]*)$')


class ConvertUtils:
    @staticmethod
    def bytes_to_human(size_bytes: int) -> str:
        """
        Convert bytes to human-readable string (e.g., 1.50KB, 3.20MB).
        """
        if size_bytes < 0:
            return "0B"
        if size_bytes < 1024:
            return f"{size_bytes}B"

        value = float(size_bytes)
        for unit in ["KB", "MB", "GB", "TB", "PB"]:
            value /= 1024
            if value < 1024:
                return f"{value:.2f}{unit}"
        return f"{value / 1024:.2f}EB"

    @staticmethod
    def human_to_bytes(size_str: str) -> int:
        """
        Convert human-readable size string to bytes.
        Supports formats: '1.5GB', '2048KB', '1000', '1K', '1MiB'.
        Raises ValueError for negative sizes or invalid formats.
        """
        match = _SIZE_PATTERN.match(size_str.strip().upper())
        if not match or match.group('unit') not in _UNITS and match.group('unit') != '':
            raise ValueError(
                f"Invalid size format: '{size_str}'. "
                f"Supported formats: 1.5GB, 2048KB, 1000, 1K, 1M, etc."
            )

        value = float(match.group('value'))
        if value < 0:
            raise ValueError(f"Negative size not allowed: '{size_str}'")

        unit = match.group('unit') or 'B'
        return int(value * _UNITS[unit])

    @staticmethod
    def is_valid_size_format(size_str: str) -> bool:
        try:
            ConvertUtils.human_to_bytes(size_str)
            return True
        except ValueError:
            return False
