"""Application services - message routing and live delivery."""
