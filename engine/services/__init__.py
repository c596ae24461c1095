"""Application services over the market data gateway and position store."""
