"""Portfolio dashboard process: config, gateways, JSON API."""
