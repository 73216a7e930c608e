"""Blockchain deposit monitoring."""

from sw4p.chain.base import ChainSource, ChainTransaction
from sw4p.chain.factory import ChainSourceFactory
from sw4p.chain.observer import ChainObserver

__all__ = ["ChainObserver", "ChainSource", "ChainSourceFactory", "ChainTransaction"]
