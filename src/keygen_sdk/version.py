"""Version information for the Keygen licensing SDK"""

__version__ = "0.1.0"
