"""Upstream market data clients."""

from .coingecko import CoinGeckoClient

__all__ = ['CoinGeckoClient']
