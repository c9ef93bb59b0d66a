"""
emergency — Emergency alert orchestration engine.

Sub-modules:
    channels/       — Messaging providers (Twilio SMS/WhatsApp, MSG91, simulation)
    transcription/  — Audio conversion + ordered speech-to-text backend chain
    orchestrator    — Alert state machine: validate → transcribe → dispatch → record
    dispatcher      — Concurrent per-contact fan-out with failure isolation
    translation     — Best-effort translation of transcripts to English
    stores          — Contact / medical / hospital / alert storage collaborators
    models          — Data structures shared across the engine
"""
