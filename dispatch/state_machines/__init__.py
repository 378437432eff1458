#Pure transition rules. No store access, no events.
