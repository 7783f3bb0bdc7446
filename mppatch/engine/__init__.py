"""Patch lifecycle engine.

- Tree access: disk reads/writes and the dry-run overlay
- Prober: side-effect-free classification of a unit
- Lifecycle: ordered apply / reverse / dry-run over the unit set
"""
