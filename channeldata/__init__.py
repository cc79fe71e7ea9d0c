"""Channel data query service: raw samples stitched with calendar rollups."""

__version__ = '0.1.0'
