"""evote backend: time-boxed elections with commissioner-approved results."""
