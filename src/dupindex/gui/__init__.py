"""
Optional Qt integration (install with the [gui] extra). Importing this package requires PySide6.
"""
