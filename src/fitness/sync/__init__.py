"""Request-time orchestration for Stride & Sleep.

Modules:
    orchestrator: cache-first reads, live merges, background cache population
"""
