"""
option-chain-pricer
===================
Historical price series and on-demand theoretical option chains.

Modules:
    black_scholes   - Normal CDF, pricing, greeks
    volatility      - Historical and implied volatility
    ladders         - Strike and expiry ladders
    chain           - Chain snapshot generation
    models          - PricePoint / PriceSeries contracts
    store           - SQLite price history and staleness rule
    providers       - Alpha Vantage and synthetic price sources
    retry           - Backoff policy for remote fetches
    singleflight    - De-duplication of concurrent refreshes
    service         - Request pipeline for the routing layer
    csv_import      - Bulk seeding from CSV exports
    config          - Global constants and defaults
"""

__version__ = "0.1.0"
