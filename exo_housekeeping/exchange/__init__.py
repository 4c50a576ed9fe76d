"""Exchange Online administration layer.

``client`` wraps the cmdlets the housekeeping drivers call; ``models``
validates their JSON output into typed records.
"""
