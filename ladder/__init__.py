"""Singles ladder management: ranked positions, challenges, matches, disputes and playoffs."""

__version__ = "1.0.0"
