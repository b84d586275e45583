"""
Whale Detection Engine

Processing pipeline for one tracking session:

    adapter.parse -> Deduplicator -> ThresholdCalculator cutoff
        -> classify -> CorrelationDetector -> Aggregator -> TrackerUpdate

Modules:
    - dedup: Per-exchange bounded trade id window
    - threshold: Dynamic whale cutoff from 24h market activity
    - classifier: Severity tier of a whale trade
    - correlation: Cross-exchange confirmation of whale trades
    - aggregator: Rolling window of whale trades and its statistics
    - transport: WebSocket transport used for push feeds
    - supervisor: Connection state machine, reconnects and poll timers
    - session: EngineSession, the owner of all per-session state
"""
