"""mppatch — Rockchip MPP patch lifecycle for LiveKit rust-sdks checkouts."""

__version__ = "0.3.0"
