"""Concrete market data gateways (Polygon.io, Yahoo Finance)."""
