"""
Chain-facing collaborators: V2 pool adapter, executor contract handle,
Flashbots relay client, configuration and the block-driven runner.
"""
