"""API routers."""

from channeldata.routers import data

__all__ = ['data']
