"""Unit tests for individual components in isolation.

Coverage:
    - protocol/: Request encoding, line decoding, chunk reassembly
    - session/: Transcript and in-flight request state machine
    - storage/: Selected model persistence
    - client/: Configuration and HTTP error mapping

Network access is replaced by httpx.MockTransport.
"""
