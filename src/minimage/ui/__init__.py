"""Terminal front-end pieces: progress surfaces and the cancel key listener."""
