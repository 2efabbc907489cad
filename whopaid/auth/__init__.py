"""Session helpers. Sign-in itself is handled by Firebase Authentication."""
