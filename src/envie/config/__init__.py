"""Configuration — settings, ``envie.toml`` discovery, logging."""
