"""Engine adapters realizing the session contract."""
