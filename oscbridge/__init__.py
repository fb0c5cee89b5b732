"""
OSC Bridge - buffers OSC sensor streams and serves them to visualizers over HTTP.

Modules:
    osc: OSC constants, UDP server, argument coercion, statistics
    buffers: Per-address sample buffers with read/flush state
    transforms: Element, reduce and aggregate functions
    transformer: Base transformer coalescing samples between reads
    aggregate: Virtual addresses combining several real addresses
    listener: UDP receive thread feeding samples into a callback
    recorder: Batched CSV recording of raw samples
    sessions: Client session TTL tracking
    scheduler: Periodic maintenance tasks
    config: Listener/server configuration and YAML loading
    service: Listener lifecycle and locked access to the pipeline
    server: Flask HTTP API and CLI
    mock_stream: Test sender replaying recordings or random data
"""

__version__ = "0.1.0"

# Note: Modules are imported on-demand so python -m oscbridge.<module>
# runs without RuntimeWarning.
# Use: from oscbridge import service, server, etc.
