"""Engine-independent building blocks: identity codec, event bus, jobs and the session contract."""
