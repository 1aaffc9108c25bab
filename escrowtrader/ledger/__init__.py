"""
Ledger components.

Each component owns one slice of persisted state (market state, commodities,
escrow balances, positions) and is driven by `escrowtrader.trading.engine`,
which serializes every public operation.
"""
