"""Snapshot ingestion and time-window distillation.

- `ingester`: polls adapters, persists live/archive snapshots, rebuilds windows
- `distiller`: reduces windows into observable rows
- `methods`: reduction functions (twa, slope, lret, rate, streak, raw, sum)
- `storage`: snapshot persistence
- `adapters`: adapter contract, registry and bundled sources
"""
