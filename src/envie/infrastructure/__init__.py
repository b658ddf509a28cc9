"""Infrastructure layer — descriptor loading, discovery, graph engine, provisioner.

This layer depends on the domain layer and third-party libs (ruamel.yaml,
NetworkX).  It must never import from services, commands, or output.
"""
