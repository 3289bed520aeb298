"""
coinpulse - live cryptocurrency dashboard client

Keeps a table of top CoinGecko coins and a live price chart up to date:
- Polling streams for the table and the selected coin's chart
- Position-based row reconciliation for in-place updates
- Catalog search with debounced input and timed fallback
- FastAPI + WebSocket surface for a browser front end
"""

__version__ = "0.1.0"

from coinpulse.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
