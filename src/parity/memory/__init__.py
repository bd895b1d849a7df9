"""Persistent progress records and the SQLite store behind them."""
