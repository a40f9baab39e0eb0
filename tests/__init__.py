"""
Test suite for the inference worker.

Tests are organized by component:
- test_protocol/: message types and validation
- test_worker/: registry, lifecycle, streaming, dispatcher and session
- test_engines/: compute engines and the engine factory
- test_transport/: queue and JSON-lines transports, CLI
"""
