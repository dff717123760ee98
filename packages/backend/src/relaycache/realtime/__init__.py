"""Real-time infrastructure — notification bus + WebSocket fan-out.

Learn: Events flow through two channels:
1. Services → bus PUBLISH (backend-side broadcast)
2. bus SUBSCRIBE → FanoutGateway → every WebSocket session (real-time delivery)

This decouples event producers (the catalog service) from consumers
(WebSocket clients). The bus is Redis pub/sub in production and an
in-process MemoryBus in tests.
"""
