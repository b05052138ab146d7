"""Core framework components for VulnTrack."""

from .core_manager import VulnTrackCore

__all__ = ['VulnTrackCore']
