"""envie — service dependency resolution and environment topology for monorepos."""

__version__ = "0.1.0"
