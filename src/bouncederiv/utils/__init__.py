"""Small helpers shared across bouncederiv."""
