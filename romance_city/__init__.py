"""Romance City — turn engine for an AI-narrated visual novel."""
