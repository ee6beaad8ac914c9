"""Overseer monitor: periodic health checks, bounded auto-recovery and retention."""
