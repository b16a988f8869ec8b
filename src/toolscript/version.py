"""Version information for toolscript."""

PROGRAM_NAME = "toolscript"
__version__ = "0.4.0"
